"""Sale model for storing polled group sales from the external feed."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, Index
from sqlalchemy.orm import Mapped, mapped_column

from salewatch.db.base import Base


class SaleRecord(Base):
    """
    One asset sale, stored exactly once.

    The primary key is the feed's content hash, so the uniqueness constraint
    is the only deduplication mechanism. Rows are append-only.
    """

    __tablename__ = "sales"

    id_hash: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Content hash of the external transaction",
    )
    group_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True, comment="Partition the sale belongs to"
    )
    item: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    buyer_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    buyer_id: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Currency units"
    )
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        comment="Timestamp supplied by the feed",
    )
    polled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_sales_amount_non_negative"),
        Index("idx_sales_group_occurred", "group_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SaleRecord(id_hash={self.id_hash}, group_id={self.group_id}, "
            f"item={self.item!r}, amount={self.amount})>"
        )
