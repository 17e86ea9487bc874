"""
Analytics aggregator.

Recomputes the rolling statistics for the most recent day and upserts the
daily snapshot. Optionally flags two-sigma spikes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.analytics.stats import detect_spike, rolling_stats
from salewatch.db.unit_of_work import UnitOfWork
from salewatch.notify.base import BaseNotifier
from salewatch.notify.models import Message, MessageField
from salewatch.scheduler.state import AggregationState

logger = structlog.get_logger(__name__)


class AnalyticsAggregator:
    """Writes one DailySnapshot per run once 7 distinct days of sales exist."""

    def __init__(
        self,
        state: Optional[AggregationState] = None,
        anomaly_detection: bool = False,
        notifier: Optional[BaseNotifier] = None,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.state = state or AggregationState()
        self.anomaly_detection = anomaly_detection
        self.notifier = notifier
        self._session = session
        self._session_factory = session_factory
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_run_at: Optional[datetime] = None

    async def run_once(self) -> Dict[str, Any]:
        """
        Recompute and upsert the snapshot for the latest day with sales.

        Returns:
            Dictionary describing what happened: ``skipped``,
            ``insufficient_data`` or ``written``
        """
        if not self.state.try_acquire():
            logger.info("aggregate.skipped_in_flight")
            return {"status": "skipped"}

        try:
            result = await self._aggregate()
            self.last_result = result
            self.last_run_at = datetime.now(timezone.utc)
            return result
        finally:
            self.state.release()

    async def _aggregate(self) -> Dict[str, Any]:
        async with UnitOfWork(
            session=self._session, session_factory=self._session_factory
        ) as uow:
            totals = await uow.sales.daily_totals()
            stats = rolling_stats(totals)
            if stats is None:
                logger.info("aggregate.insufficient_data", days=len(totals))
                return {"status": "insufficient_data", "days": len(totals)}

            await uow.snapshots.upsert_snapshot(
                date=stats.date,
                total=stats.total,
                moving_average_7=stats.moving_average_7,
                trend=stats.trend,
                volatility=stats.volatility,
            )

            spike = detect_spike(stats) if self.anomaly_detection else None
            if spike is not None:
                await uow.anomalies.record_anomaly(
                    date=spike.date,
                    value=spike.value,
                    threshold=spike.threshold,
                    reason=spike.reason,
                )
            await uow.commit()

        logger.info(
            "aggregate.snapshot_written",
            date=stats.date.isoformat(),
            total=stats.total,
            moving_average_7=round(stats.moving_average_7, 2),
            trend=round(stats.trend, 4),
            volatility=round(stats.volatility, 2),
        )

        result: Dict[str, Any] = {
            "status": "written",
            "date": stats.date.isoformat(),
            "total": stats.total,
            "moving_average_7": stats.moving_average_7,
            "trend": stats.trend,
            "volatility": stats.volatility,
            "anomaly": None,
        }

        if spike is not None:
            logger.warning("aggregate.anomaly", date=spike.date.isoformat(), value=spike.value)
            result["anomaly"] = {"value": spike.value, "threshold": spike.threshold, "reason": spike.reason}
            if self.notifier is not None:
                try:
                    await self.notifier.send_message(
                        Message(
                            title="Sales spike detected",
                            description=spike.reason,
                            fields=[
                                MessageField(name="Date", value=spike.date.isoformat()),
                                MessageField(name="Total", value=f"{spike.value} Robux"),
                                MessageField(name="Threshold", value=f"{spike.threshold:.1f}"),
                            ],
                        )
                    )
                except Exception as exc:
                    logger.error("notify.anomaly_failed", error=str(exc))

        return result
