"""Record of summary reports already delivered."""

import datetime as dt
from datetime import datetime, timezone

from sqlalchemy import Date, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from salewatch.db.base import Base


class SentReport(Base):
    """One row per report kind and period; a row means the report went out."""

    __tablename__ = "sent_reports"

    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    period: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<SentReport(kind={self.kind}, period={self.period})>"
