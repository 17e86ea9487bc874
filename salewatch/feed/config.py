"""
Ingestion poller configuration.

Defines polling intervals, partitions, alert threshold and
feed client settings.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from salewatch.core.config import Settings, get_settings


class PollerConfig(BaseModel):
    """Main ingestion poller configuration."""

    # Polling behavior
    poll_interval_seconds: int = Field(
        default=60, ge=1, description="Seconds between polling ticks"
    )
    batch_size: int = Field(
        default=10, ge=1, le=100, description="Most recent transactions per request"
    )
    group_ids: List[int] = Field(
        default_factory=list, description="Partitions polled independently"
    )

    # Feed client settings
    client_type: Literal["roblox", "mock"] = Field(default="roblox")
    api_base_url: Optional[str] = Field(default=None)
    api_timeout: float = Field(default=30.0, gt=0)
    cookie: Optional[str] = Field(default=None)

    # Deduplication and alerting
    seen_ttl_seconds: int = Field(
        default=60, ge=0, description="Window in which a hash is not reprocessed"
    )
    alert_min_amount: int = Field(
        default=0, ge=0, description="Minimum amount that triggers a notification"
    )

    # Operational settings
    history_size: int = Field(default=100, ge=1, description="Runs kept in memory")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollerConfig":
        return cls(
            poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
            batch_size=settings.POLL_BATCH_SIZE,
            group_ids=settings.group_ids,
            client_type=settings.FEED_CLIENT,
            api_base_url=settings.FEED_BASE_URL,
            api_timeout=settings.FEED_TIMEOUT_SECONDS,
            cookie=settings.FEED_COOKIE,
            seen_ttl_seconds=settings.SEEN_TTL_SECONDS,
            alert_min_amount=settings.ALERT_MIN_AMOUNT,
        )


def get_poller_config() -> PollerConfig:
    """Build the poller configuration from application settings."""
    return PollerConfig.from_settings(get_settings())
