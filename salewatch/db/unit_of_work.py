"""Unit of Work pattern for managing database transactions."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salewatch.db import base
from salewatch.db.models import AnomalyRecord, DailySnapshot, SaleRecord, SentReport
from salewatch.db.repositories import (
    AnomalyRepository,
    SaleRepository,
    SentReportRepository,
    SnapshotRepository,
)


class UnitOfWork:
    """
    Unit of Work pattern implementation for managing database transactions.

    This class provides a single entry point for all repository operations
    and ensures that all operations within a context share the same database
    session and transaction.

    Usage:
        async with UnitOfWork() as uow:
            inserted = await uow.sales.insert_if_absent(id_hash="abc", ...)
            await uow.commit()
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize Unit of Work.

        Args:
            session: Optional existing session (useful for testing)
            session_factory: Factory used when no session is given
                (defaults to the module-level AsyncSessionLocal)
        """
        self._session = session
        self._session_factory = session_factory
        self._owned_session = session is None

        # Repositories (initialized in __aenter__)
        self.sales: SaleRepository = None  # type: ignore
        self.snapshots: SnapshotRepository = None  # type: ignore
        self.anomalies: AnomalyRepository = None  # type: ignore
        self.sent_reports: SentReportRepository = None  # type: ignore

    async def __aenter__(self):
        """Enter async context manager."""
        if self._owned_session:
            factory = self._session_factory or base.AsyncSessionLocal
            self._session = factory()

        assert self._session is not None, "Session must be initialized"
        self.sales = SaleRepository(SaleRecord, self._session)
        self.snapshots = SnapshotRepository(DailySnapshot, self._session)
        self.anomalies = AnomalyRepository(AnomalyRecord, self._session)
        self.sent_reports = SentReportRepository(SentReport, self._session)

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        if exc_type is not None:
            await self.rollback()
        elif self._owned_session:
            await self.commit()

        if self._owned_session and self._session:
            await self._session.close()

    @property
    def session(self) -> AsyncSession:
        assert self._session is not None, "UnitOfWork not entered"
        return self._session

    async def commit(self):
        """Commit the current transaction."""
        if self._session:
            await self._session.commit()

    async def rollback(self):
        """Rollback the current transaction."""
        if self._session:
            await self._session.rollback()
