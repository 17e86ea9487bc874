"""Database models for the sales alert bot."""

from .report import SentReport
from .sale import SaleRecord
from .snapshot import AnomalyRecord, DailySnapshot

__all__ = ["SaleRecord", "DailySnapshot", "AnomalyRecord", "SentReport"]
