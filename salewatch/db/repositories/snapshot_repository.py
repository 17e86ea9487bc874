"""Snapshot and anomaly repositories, both upserted by date."""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_, select

from salewatch.db.models.snapshot import AnomalyRecord, DailySnapshot
from salewatch.db.repository import BaseRepository, storage_errors

SNAPSHOT_STATS = ("total", "moving_average_7", "trend", "volatility")


class SnapshotRepository(BaseRepository[DailySnapshot]):
    """Repository for DailySnapshot."""

    async def upsert_snapshot(
        self,
        date,
        total: int,
        moving_average_7: float,
        trend: float,
        volatility: float,
    ) -> None:
        """
        Insert or replace the snapshot row for ``date``.

        A rerun with identical statistics leaves the row untouched,
        ``computed_at`` included.
        """
        stats = {
            "total": total,
            "moving_average_7": moving_average_7,
            "trend": trend,
            "volatility": volatility,
        }
        values = {"date": date, **stats, "computed_at": datetime.now(timezone.utc)}
        insert = self.upsert_insert()
        with storage_errors():
            if insert is None:
                existing = await self.session.get(DailySnapshot, date)
                if existing is not None and all(
                    getattr(existing, key) == value for key, value in stats.items()
                ):
                    return
                await self.session.merge(DailySnapshot(**values))
                await self.session.flush()
                return

            stmt = insert(DailySnapshot).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["date"],
                set_={
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key != "date"
                },
                where=or_(
                    *(
                        getattr(DailySnapshot, key) != getattr(stmt.excluded, key)
                        for key in SNAPSHOT_STATS
                    )
                ),
            )
            await self.session.execute(stmt)

    async def latest_snapshot(self) -> Optional[DailySnapshot]:
        """Most recent snapshot by date, or None when the table is empty."""
        query = select(DailySnapshot).order_by(DailySnapshot.date.desc()).limit(1)
        with storage_errors():
            result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_for_date(self, date) -> Optional[DailySnapshot]:
        return await self.get_by_field("date", date)


class AnomalyRepository(BaseRepository[AnomalyRecord]):
    """Repository for flagged two-sigma spikes."""

    async def record_anomaly(
        self, date, value: int, threshold: float, reason: str
    ) -> None:
        values = {
            "date": date,
            "value": value,
            "threshold": threshold,
            "reason": reason,
            "detected_at": datetime.now(timezone.utc),
        }
        insert = self.upsert_insert()
        with storage_errors():
            if insert is None:
                await self.session.merge(AnomalyRecord(**values))
                await self.session.flush()
                return

            stmt = insert(AnomalyRecord).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["date"],
                set_={
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key != "date"
                },
            )
            await self.session.execute(stmt)

    async def recent(self, limit: int = 10) -> List[AnomalyRecord]:
        query = select(AnomalyRecord).order_by(AnomalyRecord.date.desc()).limit(limit)
        with storage_errors():
            result = await self.session.execute(query)
        return list(result.scalars().all())
