"""
Base sale feed client interface.

Defines the contract that all transaction feed clients must implement.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

ASSET_SALE_TYPE = "Asset"


def entry_type(entry: Any) -> Optional[str]:
    """``details.type`` of a raw feed entry, None when absent or malformed."""
    if not isinstance(entry, dict):
        return None
    details = entry.get("details")
    if not isinstance(details, dict):
        return None
    value = details.get("type")
    return value if isinstance(value, str) else None


def is_asset_entry(entry: Any) -> bool:
    return entry_type(entry) == ASSET_SALE_TYPE


class RawSale(BaseModel):
    """One feed transaction before it is stored."""

    id_hash: str = Field(min_length=1)
    asset_type: Optional[str] = None
    item_name: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_id: Optional[int] = None
    amount: int = Field(ge=0)
    occurred_at: datetime

    @classmethod
    def from_feed(cls, entry: Dict[str, Any]) -> "RawSale":
        """
        Build from a feed entry.

        Expected shape::

            {"idHash": "...", "created": "2026-10-19T10:00:00Z",
             "details": {"type": "Asset", "name": "Red Hoodie"},
             "agent": {"id": 123, "name": "buyer"},
             "currency": {"amount": 5}}

        Raises:
            FeedParseError: if required fields are missing or malformed
        """
        if not isinstance(entry, dict):
            raise FeedParseError(f"Feed entry is not an object: {entry!r}")
        details, agent, currency = (
            value if isinstance(value, dict) else {}
            for value in (entry.get("details"), entry.get("agent"), entry.get("currency"))
        )
        try:
            return cls(
                id_hash=entry.get("idHash"),
                asset_type=details.get("type"),
                item_name=details.get("name"),
                buyer_name=agent.get("name"),
                buyer_id=agent.get("id"),
                amount=currency.get("amount"),
                occurred_at=entry.get("created"),
            )
        except ValidationError as exc:
            raise FeedParseError(f"Malformed feed entry: {exc}") from exc

    def to_record(self, group_id: int) -> Dict[str, Any]:
        """Column values for the sales table, timestamp normalised to UTC."""
        occurred_at = self.occurred_at
        if occurred_at.tzinfo is None:
            occurred_at = occurred_at.replace(tzinfo=timezone.utc)
        return {
            "id_hash": self.id_hash,
            "group_id": group_id,
            "item": self.item_name or "Unknown item",
            "buyer_name": self.buyer_name or "",
            "buyer_id": self.buyer_id or 0,
            "amount": self.amount,
            "occurred_at": occurred_at.astimezone(timezone.utc),
        }


class BaseFeedClient(ABC):
    """
    Abstract base class for sale feed clients.

    Every integration returns the raw transaction entries of one partition,
    newest first. Entries are validated by the poller, after the asset-type
    filter, so a malformed entry of another type never reaches the parser.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL for the API
            timeout: Request timeout in seconds
        """
        self.base_url = base_url
        self.timeout = timeout

    @abstractmethod
    async def fetch_entries(self, group_id: int, limit: int = 10) -> List[Any]:
        """
        Fetch the most recent transaction entries of a partition.

        Args:
            group_id: Partition identifier
            limit: Maximum number of transactions to fetch

        Returns:
            Unvalidated entries in the feed's JSON shape, newest first

        Raises:
            FeedConnectionError: If the request fails
            FeedParseError: If the response as a whole cannot be parsed
        """
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Source identifier (e.g. 'roblox', 'mock')."""
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        return None


class FeedError(Exception):
    """Base exception for feed client errors."""

    pass


class FeedConnectionError(FeedError):
    """Raised when the feed cannot be reached or answers with an error."""

    pass


class FeedParseError(FeedError):
    """Raised when the feed returns data that cannot be parsed."""

    pass
