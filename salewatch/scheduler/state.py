"""In-flight markers owned by the scheduler and shared with the poller."""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Set


class SeenCache:
    """
    Remembers transaction hashes for a short time.

    Tolerates the feed delivering the same sale twice within one polling
    window, independent of what the database says.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._expires: Dict[str, float] = {}

    def seen_recently(self, key: str) -> bool:
        self._evict()
        return key in self._expires

    def mark(self, key: str) -> None:
        if self.ttl_seconds <= 0:
            return
        self._expires[key] = self._clock() + self.ttl_seconds

    def _evict(self) -> None:
        now = self._clock()
        expired = [key for key, expiry in self._expires.items() if expiry <= now]
        for key in expired:
            del self._expires[key]

    def __len__(self) -> int:
        self._evict()
        return len(self._expires)


@dataclass
class IngestionState:
    """Partitions with a poll in progress plus recently seen hashes."""

    seen: SeenCache = field(default_factory=SeenCache)
    busy_partitions: Set[int] = field(default_factory=set)

    def try_acquire(self, group_id: int) -> bool:
        """Mark a partition busy; False if a poll for it is already running."""
        if group_id in self.busy_partitions:
            return False
        self.busy_partitions.add(group_id)
        return True

    def release(self, group_id: int) -> None:
        self.busy_partitions.discard(group_id)


@dataclass
class AggregationState:
    """Single flag guarding against overlapping aggregation runs."""

    running: bool = False

    def try_acquire(self) -> bool:
        if self.running:
            return False
        self.running = True
        return True

    def release(self) -> None:
        self.running = False
