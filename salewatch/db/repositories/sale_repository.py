"""Sale repository: idempotent insert and time-windowed aggregation."""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from salewatch.db.models.sale import SaleRecord
from salewatch.db.repository import BaseRepository, storage_errors


def _as_date(value: Any) -> date:
    # SQLite returns DATE() results as ISO strings
    if isinstance(value, str):
        return date.fromisoformat(value)
    if isinstance(value, datetime):
        return value.date()
    return value


def day_start(day: date) -> datetime:
    """UTC midnight of the given calendar day."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def utc_day(column: Any, dialect_name: str) -> Any:
    """SQL expression for the UTC calendar day of a timestamp column."""
    if dialect_name == "postgresql":
        # DATE() of a timestamptz follows the session TimeZone
        return func.date(func.timezone("UTC", column))
    # SQLite stores the UTC wall-clock time written by the poller
    return func.date(column)


class SaleRepository(BaseRepository[SaleRecord]):
    """Repository for SaleRecord with append-only semantics."""

    async def insert_if_absent(self, **values: Any) -> bool:
        """
        Insert a sale keyed by ``id_hash`` unless it already exists.

        The uniqueness constraint decides; no prior lookup is made.

        Returns:
            True if a row was written, False if the hash was already stored
        """
        insert = self.upsert_insert()
        with storage_errors():
            if insert is not None:
                stmt = (
                    insert(SaleRecord)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["id_hash"])
                )
                result = await self.session.execute(stmt)
                return (result.rowcount or 0) == 1

            try:
                async with self.session.begin_nested():
                    self.session.add(SaleRecord(**values))
            except IntegrityError:
                return False
            return True

    async def get_by_hash(self, id_hash: str) -> Optional[SaleRecord]:
        return await self.get_by_field("id_hash", id_hash)

    async def sum_since(
        self, window_start: datetime, group_id: Optional[int] = None
    ) -> int:
        """
        Total amount of sales with ``occurred_at >= window_start``.

        Args:
            window_start: Inclusive lower bound
            group_id: Restrict to one partition

        Returns:
            Sum of amounts, 0 when no rows match
        """
        query = select(func.coalesce(func.sum(SaleRecord.amount), 0)).where(
            SaleRecord.occurred_at >= window_start
        )
        if group_id is not None:
            query = query.where(SaleRecord.group_id == group_id)

        with storage_errors():
            result = await self.session.execute(query)
        return int(result.scalar() or 0)

    async def daily_totals(
        self, since_date: Optional[date] = None, group_id: Optional[int] = None
    ) -> List[Tuple[date, int]]:
        """
        Per-day totals, ascending by date.

        Args:
            since_date: First calendar day to include (UTC)
            group_id: Restrict to one partition

        Returns:
            List of (date, total) pairs for days that have sales
        """
        day = utc_day(SaleRecord.occurred_at, self.dialect_name).label("day")
        query = select(day, func.sum(SaleRecord.amount).label("total"))
        if since_date is not None:
            query = query.where(SaleRecord.occurred_at >= day_start(since_date))
        if group_id is not None:
            query = query.where(SaleRecord.group_id == group_id)
        query = query.group_by(day).order_by(day)

        with storage_errors():
            result = await self.session.execute(query)
        return [(_as_date(row.day), int(row.total or 0)) for row in result]

    async def daily_totals_by_group(
        self, since_date: Optional[date] = None
    ) -> List[Dict[str, Any]]:
        """Per-group per-day totals, the raw dashboard shape."""
        day = utc_day(SaleRecord.occurred_at, self.dialect_name).label("day")
        query = select(
            SaleRecord.group_id, day, func.sum(SaleRecord.amount).label("total")
        )
        if since_date is not None:
            query = query.where(SaleRecord.occurred_at >= day_start(since_date))
        query = query.group_by(SaleRecord.group_id, day).order_by(
            day, SaleRecord.group_id
        )

        with storage_errors():
            result = await self.session.execute(query)
        return [
            {
                "group_id": row.group_id,
                "date": _as_date(row.day),
                "total": int(row.total or 0),
            }
            for row in result
        ]

    async def recent_sales(
        self, limit: int = 20, group_id: Optional[int] = None
    ) -> List[SaleRecord]:
        """Most recent sales by feed timestamp, newest first."""
        query = select(SaleRecord).order_by(SaleRecord.occurred_at.desc())
        if group_id is not None:
            query = query.where(SaleRecord.group_id == group_id)
        query = query.limit(limit)

        with storage_errors():
            result = await self.session.execute(query)
        return list(result.scalars().all())
