"""Discord direct-message notifier over the REST API."""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from salewatch.notify.base import BaseNotifier, NotificationError
from salewatch.notify.models import Message, SaleAlert

logger = structlog.get_logger(__name__)

EMBED_COLOR = 0x57F287


class DiscordNotifier(BaseNotifier):
    """
    Sends embeds to one user's DM channel.

    The DM channel id is resolved once via ``POST /users/@me/channels`` and
    cached for the lifetime of the notifier.
    """

    def __init__(
        self,
        token: str,
        recipient_id: str,
        api_base_url: str = "https://discord.com/api/v10",
        thumbnails_base_url: Optional[str] = "https://thumbnails.roblox.com",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.recipient_id = str(recipient_id)
        self.thumbnails_base_url = thumbnails_base_url
        self._channel_id: Optional[str] = None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._api_base_url = api_base_url.rstrip("/")
        self._headers = {"Authorization": f"Bot {token}"}

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._api_base_url}{path}"
        try:
            response = await self._client.post(url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Discord request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "discord.send_failed",
                status=response.status_code,
                body=response.text[:500],
            )
            raise NotificationError(
                f"Discord returned HTTP {response.status_code}: {response.text[:200]}"
            )
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise NotificationError(
                f"Discord returned a non-JSON body: {response.text[:200]}"
            ) from exc
        if not isinstance(payload, dict):
            raise NotificationError("Discord returned an unexpected JSON body")
        return payload

    async def _dm_channel_id(self) -> str:
        if self._channel_id is None:
            channel = await self._post(
                "/users/@me/channels", {"recipient_id": self.recipient_id}
            )
            channel_id = channel.get("id")
            if not channel_id:
                raise NotificationError("Discord did not return a DM channel id")
            self._channel_id = str(channel_id)
        return self._channel_id

    async def _send_embed(self, embed: dict[str, Any]) -> None:
        channel_id = await self._dm_channel_id()
        await self._post(f"/channels/{channel_id}/messages", {"embeds": [embed]})

    async def lookup_avatar(self, user_id: int) -> Optional[str]:
        """Headshot URL for a buyer, or None when unavailable."""
        if not self.thumbnails_base_url or not user_id:
            return None
        url = f"{self.thumbnails_base_url.rstrip('/')}/v1/users/avatar-headshot"
        params = {"userIds": user_id, "size": "150x150", "format": "Png"}
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("discord.avatar_lookup_failed", user_id=user_id, error=str(exc))
            return None

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        image_url = data[0].get("imageUrl")
        return image_url if isinstance(image_url, str) else None

    async def send_sale(self, alert: SaleAlert) -> None:
        embed: dict[str, Any] = {
            "title": alert.title,
            "color": EMBED_COLOR,
            "fields": [
                {"name": "Item", "value": alert.item, "inline": True},
                {"name": "Buyer", "value": alert.buyer_name or "Unknown", "inline": True},
                {"name": "Price", "value": f"{alert.amount} Robux", "inline": True},
                {"name": "Group", "value": str(alert.group_id), "inline": True},
            ],
            "timestamp": alert.occurred_at.isoformat(),
        }
        if alert.buyer_id:
            avatar = await self.lookup_avatar(alert.buyer_id)
            if avatar:
                embed["thumbnail"] = {"url": avatar}

        await self._send_embed(embed)
        logger.info("discord.sale_sent", item=alert.item, group_id=alert.group_id)

    async def send_message(self, message: Message) -> None:
        embed: dict[str, Any] = {
            "title": message.title,
            "color": EMBED_COLOR,
            "fields": [
                {"name": f.name, "value": f.value, "inline": f.inline}
                for f in message.fields
            ],
            "timestamp": message.timestamp.isoformat(),
        }
        if message.description:
            embed["description"] = message.description

        await self._send_embed(embed)
        logger.info("discord.message_sent", title=message.title)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
