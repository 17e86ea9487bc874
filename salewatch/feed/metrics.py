"""
Ingestion poller metrics.

Tracks per-partition poll runs in memory so the status endpoint can
report recent activity.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


class PollStatus(str, Enum):
    """Status of a polling run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some records failed to store
    FAILED = "failed"
    SKIPPED = "skipped"  # Previous poll for the partition still running


@dataclass
class PollRunMetrics:
    """Metrics for a single partition poll."""

    run_id: str
    group_id: int
    started_at: datetime
    ended_at: Optional[datetime] = None
    status: PollStatus = PollStatus.SUCCESS

    fetched: int = 0
    non_asset: int = 0
    suppressed: int = 0
    new: int = 0
    duplicate: int = 0
    failed: int = 0
    notified: int = 0

    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def record_error(self, error: str) -> None:
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat() if self.ended_at else None
        data["status"] = self.status.value
        return data


@dataclass
class AggregateMetrics:
    """Aggregated metrics across multiple poll runs."""

    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    partial_runs: int = 0
    skipped_runs: int = 0

    total_fetched: int = 0
    total_new: int = 0
    total_duplicates: int = 0
    total_notified: int = 0
    total_errors: int = 0

    avg_duration_seconds: float = 0.0

    last_run: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ["last_run", "last_success", "last_failure"]:
            if data[key]:
                data[key] = data[key].isoformat()
        return data


class PollerMetrics:
    """
    In-memory metrics tracker for the ingestion poller.

    Several partitions can be polled at once, so each run is its own
    object handed back to the caller.
    """

    def __init__(self, history_size: int = 100):
        self._history: Deque[PollRunMetrics] = deque(maxlen=history_size)
        self._active: Dict[str, PollRunMetrics] = {}
        self._run_counter = 0

    def start_run(self, group_id: int) -> PollRunMetrics:
        self._run_counter += 1
        now = datetime.now(timezone.utc)
        run = PollRunMetrics(
            run_id=f"poll-{group_id}-{now.strftime('%Y%m%d-%H%M%S')}-{self._run_counter}",
            group_id=group_id,
            started_at=now,
        )
        self._active[run.run_id] = run
        return run

    def end_run(self, run: PollRunMetrics, status: PollStatus) -> PollRunMetrics:
        run.ended_at = datetime.now(timezone.utc)
        run.status = status
        run.duration_seconds = (run.ended_at - run.started_at).total_seconds()
        self._active.pop(run.run_id, None)
        self._history.append(run)
        return run

    def get_active_runs(self) -> List[PollRunMetrics]:
        return list(self._active.values())

    def get_last_run(self) -> Optional[PollRunMetrics]:
        return self._history[-1] if self._history else None

    def get_history(self, limit: Optional[int] = None) -> List[PollRunMetrics]:
        """Recent runs, newest first."""
        history = list(reversed(self._history))
        if limit:
            history = history[:limit]
        return history

    def get_aggregate_metrics(self, hours: Optional[int] = None) -> AggregateMetrics:
        runs = list(self._history)
        if hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            runs = [r for r in runs if r.started_at >= cutoff]

        metrics = AggregateMetrics()
        if not runs:
            return metrics

        metrics.total_runs = len(runs)
        for run in runs:
            if run.status == PollStatus.SUCCESS:
                metrics.successful_runs += 1
            elif run.status == PollStatus.FAILED:
                metrics.failed_runs += 1
            elif run.status == PollStatus.PARTIAL:
                metrics.partial_runs += 1
            elif run.status == PollStatus.SKIPPED:
                metrics.skipped_runs += 1

        metrics.total_fetched = sum(r.fetched for r in runs)
        metrics.total_new = sum(r.new for r in runs)
        metrics.total_duplicates = sum(r.duplicate for r in runs)
        metrics.total_notified = sum(r.notified for r in runs)
        metrics.total_errors = sum(len(r.errors) for r in runs)
        metrics.avg_duration_seconds = (
            sum(r.duration_seconds for r in runs) / metrics.total_runs
        )

        metrics.last_run = runs[-1].started_at
        for run in reversed(runs):
            if run.status == PollStatus.SUCCESS and not metrics.last_success:
                metrics.last_success = run.started_at
            if run.status == PollStatus.FAILED and not metrics.last_failure:
                metrics.last_failure = run.started_at
            if metrics.last_success and metrics.last_failure:
                break

        return metrics
