"""
Mock feed client for testing and development.

Generates plausible group sales without network access.
"""

import asyncio
import hashlib
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from salewatch.feed.clients.base import (
    ASSET_SALE_TYPE,
    BaseFeedClient,
    FeedConnectionError,
)

ITEM_NAMES = [
    "Black Hoodie",
    "Red Varsity Jacket",
    "Cargo Pants",
    "Oversized Tee",
    "Denim Overalls",
    "Puffer Vest",
]
BUYER_NAMES = ["pixelfox", "nova_rider", "cocoa_bean", "quietstorm", "lumen42"]
PRICES = [5, 10, 15, 25, 50, 100]


class MockFeedClient(BaseFeedClient):
    """
    Mock feed that produces a few new sales per call.

    Every fetch returns the previously generated entries too, newest first,
    so repeated polls exercise deduplication.
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        latency_ms: int = 0,
        new_per_fetch: int = 2,
        non_asset_rate: float = 0.2,
        seed: Optional[int] = None,
    ):
        """
        Args:
            failure_rate: Probability of simulated failure (0.0 to 1.0)
            latency_ms: Simulated network latency in milliseconds
            new_per_fetch: Sales added to each partition per fetch
            non_asset_rate: Share of generated entries that are not asset sales
            seed: Seed for reproducible output
        """
        super().__init__(base_url=None, timeout=0)
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms
        self.new_per_fetch = new_per_fetch
        self.non_asset_rate = non_asset_rate
        self._random = random.Random(seed)
        self._history: Dict[int, List[Dict[str, Any]]] = {}
        self._counter = 0

    def get_source_name(self) -> str:
        return "mock"

    async def fetch_entries(self, group_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)

        if self._random.random() < self.failure_rate:
            raise FeedConnectionError("Simulated feed connection failure")

        history = self._history.setdefault(group_id, [])
        for _ in range(self.new_per_fetch):
            history.append(self._generate_entry(group_id))

        # Generated in time order, so the newest entries are at the end
        return list(reversed(history))[:limit]

    def _generate_entry(self, group_id: int) -> Dict[str, Any]:
        self._counter += 1
        occurred_at = datetime.now(timezone.utc) + timedelta(microseconds=self._counter)
        digest = hashlib.sha1(f"{group_id}:{self._counter}".encode()).hexdigest()
        is_asset = self._random.random() >= self.non_asset_rate
        return {
            "idHash": digest,
            "created": occurred_at.isoformat(),
            "details": {
                "type": ASSET_SALE_TYPE if is_asset else "GamePass",
                "name": self._random.choice(ITEM_NAMES),
            },
            "agent": {
                "id": self._random.randint(10_000, 9_999_999),
                "type": "User",
                "name": self._random.choice(BUYER_NAMES),
            },
            "currency": {"amount": self._random.choice(PRICES), "type": "Robux"},
        }
