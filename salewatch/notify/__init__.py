"""Outbound notifications."""

from salewatch.core.config import Settings
from salewatch.notify.base import BaseNotifier, LogNotifier, NotificationError
from salewatch.notify.discord import DiscordNotifier
from salewatch.notify.models import Message, MessageField, SaleAlert


def build_notifier(settings: Settings) -> BaseNotifier:
    """Notifier selected by the NOTIFIER setting."""
    if settings.NOTIFIER == "discord":
        settings.ensure_required()
        return DiscordNotifier(
            token=settings.DISCORD_TOKEN or "",
            recipient_id=settings.OWNER_DISCORD_ID or "",
            api_base_url=settings.DISCORD_API_BASE_URL,
            thumbnails_base_url=(
                settings.THUMBNAILS_BASE_URL if settings.AVATAR_LOOKUP_ENABLED else None
            ),
            timeout=settings.NOTIFIER_TIMEOUT_SECONDS,
        )
    return LogNotifier()


__all__ = [
    "BaseNotifier",
    "DiscordNotifier",
    "LogNotifier",
    "Message",
    "MessageField",
    "NotificationError",
    "SaleAlert",
    "build_notifier",
]
