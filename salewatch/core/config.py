from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SQLITE_URL = "sqlite+aiosqlite:///./salewatch.db"


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing at startup."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    This uses pydantic-settings so that we get type validation and defaults.
    Settings are loaded from environment variables with optional .env file override.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects logging renderer and required settings."""

    DEBUG: bool = True
    """Enable debug mode: verbose logging."""

    # DB
    DATABASE_URL: Optional[str] = None
    """Database connection URL. If None, uses SQLite outside production."""

    # Discord
    NOTIFIER: Literal["discord", "log"] = "discord"
    """Where sale alerts are delivered."""

    DISCORD_TOKEN: Optional[str] = None
    """Bot token used to open the DM channel and post embeds."""

    OWNER_DISCORD_ID: Optional[str] = None
    """Discord user id that receives every alert."""

    DISCORD_API_BASE_URL: str = "https://discord.com/api/v10"

    NOTIFIER_TIMEOUT_SECONDS: float = 30.0

    AVATAR_LOOKUP_ENABLED: bool = True
    """Attach the buyer's headshot thumbnail to sale embeds."""

    THUMBNAILS_BASE_URL: str = "https://thumbnails.roblox.com"

    # Feed
    GROUP_IDS: str = "10432375,6655396"
    """Comma separated partition (group) ids to poll."""

    FEED_CLIENT: Literal["roblox", "mock"] = "roblox"
    """Feed implementation; 'mock' generates synthetic sales."""

    FEED_BASE_URL: str = "https://economy.roblox.com"

    FEED_COOKIE: Optional[str] = None
    """Optional .ROBLOSECURITY cookie for private group feeds."""

    FEED_TIMEOUT_SECONDS: float = 30.0

    POLL_INTERVAL_SECONDS: int = 60

    POLL_BATCH_SIZE: int = 10
    """Most recent transactions fetched per partition per poll."""

    SEEN_TTL_SECONDS: int = 60
    """How long a transaction hash suppresses reprocessing."""

    ALERT_MIN_AMOUNT: int = 0
    """Sales at or above this amount trigger a notification."""

    # Analytics
    AGGREGATION_INTERVAL_SECONDS: int = 3600

    ANOMALY_DETECTION_ENABLED: bool = False

    REPORTS_ENABLED: bool = False
    """Send daily (and on Mondays weekly) summary messages."""

    SCHEDULER_AUTOSTART: bool = True
    """Start the polling and aggregation loops with the HTTP app."""

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DISCORD_TOKEN", "OWNER_DISCORD_ID", "FEED_COOKIE", "DATABASE_URL")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def group_ids(self) -> List[int]:
        return [int(part.strip()) for part in self.GROUP_IDS.split(",") if part.strip()]

    @property
    def database_url(self) -> str:
        return self.DATABASE_URL or DEFAULT_SQLITE_URL

    def missing_required(self) -> List[str]:
        """Names of settings the service cannot start without."""
        missing: List[str] = []
        if self.NOTIFIER == "discord":
            if not self.DISCORD_TOKEN:
                missing.append("DISCORD_TOKEN")
            if not self.OWNER_DISCORD_ID:
                missing.append("OWNER_DISCORD_ID")
        if self.ENV == "production" and not self.DATABASE_URL:
            missing.append("DATABASE_URL")
        try:
            if not self.group_ids:
                missing.append("GROUP_IDS")
        except ValueError:
            missing.append("GROUP_IDS")
        return missing

    def ensure_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
