"""Sale feed client implementations."""

from salewatch.feed.clients.base import BaseFeedClient, RawSale
from salewatch.feed.clients.mock_client import MockFeedClient
from salewatch.feed.clients.roblox_client import RobloxFeedClient

__all__ = ["BaseFeedClient", "RawSale", "MockFeedClient", "RobloxFeedClient"]
