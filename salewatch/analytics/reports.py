"""
Daily and weekly summary reports.

Checked on every aggregation tick; each report is sent at most once per
period. The daily report covers the previous UTC day and the weekly one,
sent on Mondays, the previous seven days. Deliveries are recorded in the
``sent_reports`` table so a restart does not send a period's report again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.db.unit_of_work import UnitOfWork
from salewatch.notify.base import BaseNotifier
from salewatch.notify.models import Message, MessageField
from salewatch.query.service import QueryService

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReportState:
    """Dates on which the last daily and weekly reports were sent by this process."""

    last_daily: Optional[date] = None
    last_weekly: Optional[date] = None


class ReportService:
    def __init__(
        self,
        query: QueryService,
        notifier: BaseNotifier,
        group_ids: Sequence[int],
        state: Optional[ReportState] = None,
        clock: Callable[[], datetime] = _utcnow,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.query = query
        self.notifier = notifier
        self.group_ids = list(group_ids)
        self.state = state or ReportState()
        self._clock = clock
        self._session_factory = session_factory

    async def _completed_days_total(self, days: int, group_id: Optional[int] = None) -> int:
        # chart ends today; drop today to keep only completed days
        series = await self.query.chart(group_id=group_id, days=days + 1)
        return sum(point["total"] for point in series[:-1])

    async def build_report(self, days: int, title: str) -> Message:
        total = await self._completed_days_total(days)
        fields = [MessageField(name="Total", value=f"{total} Robux")]
        if len(self.group_ids) > 1:
            for group_id in self.group_ids:
                group_total = await self._completed_days_total(days, group_id)
                fields.append(
                    MessageField(name=f"Group {group_id}", value=f"{group_total} Robux")
                )

        prediction = await self.query.forecast()
        if prediction is not None:
            fields.append(
                MessageField(
                    name="Next 24h",
                    value=f"~{prediction.predicted_next} Robux ({prediction.confidence})",
                    inline=False,
                )
            )
        return Message(title=title, fields=fields, metadata={"days": days, "total": total})

    async def _already_sent(self, kind: str, today: date) -> bool:
        async with UnitOfWork(session_factory=self._session_factory) as uow:
            return await uow.sent_reports.was_sent(kind, today)

    async def _mark_sent(self, kind: str, today: date) -> None:
        async with UnitOfWork(session_factory=self._session_factory) as uow:
            await uow.sent_reports.mark_sent(kind, today)

    async def _send_once(self, kind: str, today: date, days: int, title: str) -> bool:
        attr = f"last_{kind}"
        if getattr(self.state, attr) == today:
            return False
        if await self._already_sent(kind, today):
            setattr(self.state, attr, today)
            logger.debug("reports.already_sent", report=kind, date=today.isoformat())
            return False

        await self.notifier.send_message(await self.build_report(days, title))
        setattr(self.state, attr, today)
        await self._mark_sent(kind, today)
        return True

    async def send_due(self) -> List[str]:
        """Send whichever reports are due now; returns their names."""
        today = self._clock().astimezone(timezone.utc).date()
        sent: List[str] = []

        if await self._send_once("daily", today, 1, "Daily sales report"):
            sent.append("daily")

        if today.weekday() == 0 and await self._send_once(
            "weekly", today, 7, "Weekly sales report"
        ):
            sent.append("weekly")

        if sent:
            logger.info("reports.sent", reports=sent, date=today.isoformat())
        return sent
