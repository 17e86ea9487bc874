"""Read-only summaries over stored sales and snapshots."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Literal, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.analytics.stats import Forecast, forecast
from salewatch.db.repositories.sale_repository import day_start
from salewatch.db.unit_of_work import UnitOfWork

Period = Literal["today", "week", "month"]
PERIODS = ("today", "week", "month")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_start(period: str, now: datetime) -> datetime:
    """
    UTC start of the named period containing ``now``.

    ``week`` starts on Monday, ``month`` on the first.
    """
    today = now.astimezone(timezone.utc).date()
    if period == "today":
        return day_start(today)
    if period == "week":
        return day_start(today - timedelta(days=today.weekday()))
    if period == "month":
        return day_start(today.replace(day=1))
    raise ValueError(f"Unknown period: {period}")


class QueryService:
    """Summaries for the HTTP dashboard and chat commands."""

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._session = session
        self._session_factory = session_factory
        self._clock = clock

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(session=self._session, session_factory=self._session_factory)

    async def total_for(self, period: str, group_id: Optional[int] = None) -> int:
        """Sum of sales since the start of today, this week or this month."""
        start = period_start(period, self._clock())
        async with self._uow() as uow:
            return await uow.sales.sum_since(start, group_id)

    async def totals(self, group_id: Optional[int] = None) -> Dict[str, int]:
        return {period: await self.total_for(period, group_id) for period in PERIODS}

    async def chart(
        self, group_id: Optional[int] = None, days: int = 7
    ) -> List[Dict[str, Any]]:
        """
        Daily totals for the trailing ``days`` calendar days ending today.

        Days without sales are reported as 0.
        """
        today = self._clock().astimezone(timezone.utc).date()
        first = today - timedelta(days=days - 1)
        async with self._uow() as uow:
            rows = await uow.sales.daily_totals(since_date=first, group_id=group_id)
        by_day: Dict[date, int] = dict(rows)
        return [
            {"date": day.isoformat(), "total": by_day.get(day, 0)}
            for day in (first + timedelta(days=i) for i in range(days))
        ]

    async def forecast(self) -> Optional[Forecast]:
        """Forecast from the latest snapshot, None before the first snapshot."""
        async with self._uow() as uow:
            snapshot = await uow.snapshots.latest_snapshot()
        if snapshot is None:
            return None
        return forecast(
            based_on=snapshot.date,
            moving_average_7=snapshot.moving_average_7,
            trend=snapshot.trend,
            volatility=snapshot.volatility,
        )

    async def dashboard(self) -> List[Dict[str, Any]]:
        """Per-group daily totals across all history."""
        async with self._uow() as uow:
            rows = await uow.sales.daily_totals_by_group()
        return [{**row, "date": row["date"].isoformat()} for row in rows]

    async def recent_sales(
        self, limit: int = 20, group_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        async with self._uow() as uow:
            sales = await uow.sales.recent_sales(limit=limit, group_id=group_id)
        return [
            {
                "id_hash": sale.id_hash,
                "group_id": sale.group_id,
                "item": sale.item,
                "buyer_name": sale.buyer_name,
                "amount": sale.amount,
                "occurred_at": sale.occurred_at.isoformat(),
            }
            for sale in sales
        ]

    async def anomalies(self, limit: int = 10) -> List[Dict[str, Any]]:
        async with self._uow() as uow:
            records = await uow.anomalies.recent(limit=limit)
        return [
            {
                "date": record.date.isoformat(),
                "value": record.value,
                "threshold": record.threshold,
                "reason": record.reason,
            }
            for record in records
        ]
