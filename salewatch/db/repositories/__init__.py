"""Repository exports."""

from .report_repository import SentReportRepository
from .sale_repository import SaleRepository
from .snapshot_repository import AnomalyRepository, SnapshotRepository

__all__ = [
    "SaleRepository",
    "SnapshotRepository",
    "AnomalyRepository",
    "SentReportRepository",
]
