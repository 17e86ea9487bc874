"""
Sale feed ingestion.

Fetches group sales from the external feed, filters asset sales,
stores them exactly once and triggers notifications.
"""

from salewatch.feed.clients.base import BaseFeedClient
from salewatch.feed.metrics import PollerMetrics
from salewatch.feed.poller import IngestionPoller

__all__ = ["IngestionPoller", "BaseFeedClient", "PollerMetrics"]
