"""Base repository class with common operations and storage error mapping."""

from contextlib import contextmanager
from typing import Any, Callable, Generic, Iterator, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from salewatch.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class StoreUnavailableError(Exception):
    """The database could not be reached. Callers may retry later."""


@contextmanager
def storage_errors() -> Iterator[None]:
    """Re-raise connectivity failures as StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise StoreUnavailableError(str(exc.orig or exc)) from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise StoreUnavailableError(str(exc.orig or exc)) from exc
        raise


class BaseRepository(Generic[ModelType]):
    """
    Base repository providing common read operations for all models.

    This class implements the repository pattern, providing a clean
    abstraction over database operations bound to one session.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    def upsert_insert(self) -> Optional[Callable[..., Any]]:
        """
        Return the dialect-specific ``insert`` supporting ON CONFLICT clauses.

        Returns None for dialects without native upsert support.
        """
        if self.dialect_name == "sqlite":
            return sqlite.insert
        if self.dialect_name == "postgresql":
            return postgresql.insert
        return None

    async def get_by_field(self, field_name: str, value: Any) -> Optional[ModelType]:
        """
        Get a record by a specific field value.

        Args:
            field_name: Name of the field to search
            value: Value to search for

        Returns:
            Model instance or None if not found
        """
        field = getattr(self.model, field_name)
        with storage_errors():
            result = await self.session.execute(
                select(self.model).where(field == value)
            )
        return result.scalar_one_or_none()
