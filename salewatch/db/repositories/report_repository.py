"""Repository for delivered summary reports."""

from datetime import date, datetime, timezone

from salewatch.db.models.report import SentReport
from salewatch.db.repository import BaseRepository, storage_errors


class SentReportRepository(BaseRepository[SentReport]):
    async def was_sent(self, kind: str, period: date) -> bool:
        with storage_errors():
            return await self.session.get(SentReport, (kind, period)) is not None

    async def mark_sent(self, kind: str, period: date) -> None:
        """Record a delivery; marking the same period twice is a no-op."""
        values = {"kind": kind, "period": period, "sent_at": datetime.now(timezone.utc)}
        insert = self.upsert_insert()
        with storage_errors():
            if insert is None:
                if await self.session.get(SentReport, (kind, period)) is None:
                    self.session.add(SentReport(**values))
                    await self.session.flush()
                return

            stmt = insert(SentReport).values(**values).on_conflict_do_nothing(
                index_elements=["kind", "period"]
            )
            await self.session.execute(stmt)
