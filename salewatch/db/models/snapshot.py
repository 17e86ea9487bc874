"""Daily rolling statistics and flagged anomalies."""

import datetime as dt
from datetime import datetime, timezone

from sqlalchemy import Date, DateTime, Float, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from salewatch.db.base import Base


class DailySnapshot(Base):
    """One row of derived statistics per calendar day, overwritten on recompute."""

    __tablename__ = "daily_snapshots"

    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    moving_average_7: Mapped[float] = mapped_column(Float, nullable=False)
    trend: Mapped[float] = mapped_column(Float, nullable=False)
    volatility: Mapped[float] = mapped_column(Float, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<DailySnapshot(date={self.date}, total={self.total}, "
            f"ma7={self.moving_average_7}, trend={self.trend})>"
        )


class AnomalyRecord(Base):
    """A day whose total spiked above the two-sigma band."""

    __tablename__ = "anomalies"

    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<AnomalyRecord(date={self.date}, value={self.value})>"
