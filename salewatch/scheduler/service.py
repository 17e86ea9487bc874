"""
Scheduler driving the two timers.

A short-period ingestion timer dispatches one poll per partition and a
long-period aggregation timer recomputes the snapshot (and sends due
reports). Ticks dispatch work without awaiting it; overlapping work is
suppressed by the in-flight markers this scheduler owns.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Coroutine, Dict, Optional, Set

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.analytics.aggregator import AnalyticsAggregator
from salewatch.analytics.reports import ReportService, ReportState
from salewatch.core.config import Settings
from salewatch.feed.clients.base import BaseFeedClient
from salewatch.feed.config import PollerConfig
from salewatch.feed.poller import IngestionPoller
from salewatch.notify.base import BaseNotifier
from salewatch.query.service import QueryService
from salewatch.scheduler.state import AggregationState, IngestionState, SeenCache

logger = structlog.get_logger("scheduler")


class Scheduler:
    """Owns the timers, the in-flight state and the background tasks."""

    def __init__(
        self,
        poller: IngestionPoller,
        aggregator: AnalyticsAggregator,
        reports: Optional[ReportService] = None,
        poll_interval_seconds: float = 60,
        aggregation_interval_seconds: float = 3600,
    ):
        self.poller = poller
        self.aggregator = aggregator
        self.reports = reports
        self.poll_interval_seconds = poll_interval_seconds
        self.aggregation_interval_seconds = aggregation_interval_seconds

        self._running = False
        self._loops: list[asyncio.Task] = []
        self._tasks: Set[asyncio.Task] = set()
        self._started_at: Optional[datetime] = None
        self.ticks = {"ingestion": 0, "aggregation": 0}

    @property
    def ingestion_state(self) -> IngestionState:
        return self.poller.state

    @property
    def aggregation_state(self) -> AggregationState:
        return self.aggregator.state

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("scheduler.already_running")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._loops = [
            asyncio.create_task(
                self._timer(self.poll_interval_seconds, self.dispatch_ingestion, "ingestion")
            ),
            asyncio.create_task(
                self._timer(
                    self.aggregation_interval_seconds, self.dispatch_aggregation, "aggregation"
                )
            ),
        ]
        logger.info(
            "scheduler.started",
            poll_interval_seconds=self.poll_interval_seconds,
            aggregation_interval_seconds=self.aggregation_interval_seconds,
            group_ids=self.poller.config.group_ids,
        )

    async def stop(self) -> None:
        if not self._running:
            logger.debug("scheduler.not_running")
            return

        self._running = False
        logger.info("scheduler.stopping", pending_tasks=len(self._tasks))

        pending = [*self._loops, *self._tasks]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._loops = []
        self._tasks.clear()

        logger.info("scheduler.stopped")

    async def _timer(self, interval: float, dispatch, name: str) -> None:
        while self._running:
            try:
                self.ticks[name] += 1
                dispatch()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                logger.info("scheduler.timer_cancelled", timer=name)
                raise
            except Exception as exc:
                logger.exception("scheduler.timer_error", timer=name, error=str(exc))
                await asyncio.sleep(interval)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def dispatch_ingestion(self) -> list[asyncio.Task]:
        """Start a poll for every partition that is not already being polled."""
        tasks = []
        for group_id in self.poller.config.group_ids:
            if group_id in self.ingestion_state.busy_partitions:
                logger.info("scheduler.partition_busy", group_id=group_id)
                continue
            tasks.append(self._spawn(self.poller.poll_partition(group_id), f"poll-{group_id}"))
        return tasks

    def dispatch_aggregation(self) -> Optional[asyncio.Task]:
        if self.aggregation_state.running:
            logger.info("scheduler.aggregation_busy")
            return None
        return self._spawn(self.run_aggregation(), "aggregate")

    async def run_aggregation(self) -> Dict[str, Any]:
        """Recompute the snapshot, then send any due reports."""
        try:
            result = await self.aggregator.run_once()
        except Exception as exc:
            logger.error(
                "aggregate.failed",
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return {"status": "failed", "error": str(exc)}

        if self.reports is not None:
            try:
                result["reports_sent"] = await self.reports.send_due()
            except Exception as exc:
                logger.error("reports.failed", error=str(exc), error_type=type(exc).__name__)
        return result

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "poll_interval_seconds": self.poll_interval_seconds,
            "aggregation_interval_seconds": self.aggregation_interval_seconds,
            "ticks": dict(self.ticks),
            "pending_tasks": len(self._tasks),
            "poller": self.poller.get_status(),
            "aggregation": {
                "running": self.aggregation_state.running,
                "anomaly_detection": self.aggregator.anomaly_detection,
                "last_run_at": (
                    self.aggregator.last_run_at.isoformat()
                    if self.aggregator.last_run_at
                    else None
                ),
                "last_result": self.aggregator.last_result,
            },
            "reports_enabled": self.reports is not None,
        }

    async def aclose(self) -> None:
        await self.stop()
        await self.poller.aclose()


def build_scheduler(
    settings: Settings,
    notifier: BaseNotifier,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    client: Optional[BaseFeedClient] = None,
) -> Scheduler:
    """Wire poller, aggregator and reports around scheduler-owned state."""
    config = PollerConfig.from_settings(settings)
    ingestion_state = IngestionState(seen=SeenCache(config.seen_ttl_seconds))
    aggregation_state = AggregationState()

    poller = IngestionPoller(
        notifier=notifier,
        client=client,
        config=config,
        state=ingestion_state,
        session_factory=session_factory,
    )
    aggregator = AnalyticsAggregator(
        state=aggregation_state,
        anomaly_detection=settings.ANOMALY_DETECTION_ENABLED,
        notifier=notifier,
        session_factory=session_factory,
    )

    reports = None
    if settings.REPORTS_ENABLED:
        reports = ReportService(
            query=QueryService(session_factory=session_factory),
            notifier=notifier,
            group_ids=config.group_ids,
            state=ReportState(),
            session_factory=session_factory,
        )

    return Scheduler(
        poller=poller,
        aggregator=aggregator,
        reports=reports,
        poll_interval_seconds=config.poll_interval_seconds,
        aggregation_interval_seconds=settings.AGGREGATION_INTERVAL_SECONDS,
    )
