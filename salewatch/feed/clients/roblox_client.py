"""Roblox group transactions feed client."""

from typing import Any, List, Optional

import httpx
import structlog

from salewatch.feed.clients.base import (
    BaseFeedClient,
    FeedConnectionError,
    FeedParseError,
)

logger = structlog.get_logger(__name__)

DEFAULT_FEED_URL = "https://economy.roblox.com"


class RobloxFeedClient(BaseFeedClient):
    """Reads ``/v2/groups/{id}/transactions`` for sale transactions."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        cookie: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url or DEFAULT_FEED_URL, timeout)
        cookies = {".ROBLOSECURITY": cookie} if cookie else None
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, cookies=cookies
        )

    def get_source_name(self) -> str:
        return "roblox"

    async def fetch_entries(self, group_id: int, limit: int = 10) -> List[Any]:
        params = {"limit": limit, "sortOrder": "Desc", "transactionType": "Sale"}
        path = f"/v2/groups/{group_id}/transactions"
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise FeedConnectionError(f"Feed request failed: {exc}") from exc

        if response.status_code >= 400:
            raise FeedConnectionError(
                f"Feed returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise FeedParseError(f"Feed returned invalid JSON: {exc}") from exc

        entries = self._extract_entries(payload)
        logger.debug("feed.fetched", group_id=group_id, count=len(entries))
        return entries

    @staticmethod
    def _extract_entries(payload: Any) -> List[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            data = payload.get("data")
            if data is None:
                return []
            if isinstance(data, list):
                return data
        raise FeedParseError(f"Unexpected feed payload: {str(payload)[:200]}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
