"""Base repository class with generic data access operations.

This module implements a composition-based repository pattern that provides
reusable database access operations for any SQLAlchemy model.

Key Concepts:
- COMPOSITION PATTERN: BaseRepository is injected as a dependency, not inherited
- GENERIC TYPE SAFETY: Uses TypeVar[ModelType] for compile-time type checking
- CHUNKING: Keyset id chunks for batch sweeps
- TRANSACTION SUPPORT: Explicit commit/rollback control; resolvers commit per owner
- TRACING: @trace_database decorators integrate with OpenTelemetry

Usage Example:
    from sqlalchemy.ext.asyncio import AsyncSession
    from modcompat.models import PackageVersion

    session: AsyncSession
    repo = BaseRepository(session, PackageVersion)
    version = await repo.get(version_id)
    async for ids in repo.iter_id_chunks(chunk_size=200):
        ...
    await repo.commit()
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_database

# ============================================================================
# GENERIC TYPE DEFINITION
# ============================================================================
ModelType = TypeVar("ModelType", bound=DeclarativeBase)

logger = get_logger(__name__)


# ============================================================================
# CUSTOM EXCEPTION HIERARCHY
# ============================================================================


class RepositoryError(Exception):
    """Base exception for all repository operations.

    Raised when database operations fail. Batch jobs let it propagate so the
    scheduler retries the run; the HTTP layer maps it to 503.
    """
    pass


class NotFoundError(RepositoryError):
    """Raised when a requested entity is not found.

    Example:
        try:
            await resolver.resolve(version_id, now)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Version not found")
    """
    pass


class ConflictError(RepositoryError):
    """Raised when an operation conflicts with existing data.

    Typically a unique or foreign key constraint violation.
    """
    pass


def translate_error(error: SQLAlchemyError, action: str) -> RepositoryError:
    """Map a SQLAlchemy error onto the repository hierarchy."""
    if isinstance(error, IntegrityError):
        return ConflictError(f"Failed to {action}: {error}")
    return RepositoryError(f"Failed to {action}: {error}")


# ============================================================================
# BASE REPOSITORY
# ============================================================================


class BaseRepository(Generic[ModelType]):
    """Generic repository class providing data access for any SQLAlchemy model.

    Entity repositories inject BaseRepository as a dependency (composition)
    rather than inheriting from it.

    Args:
        session: AsyncSession for database communication
        model: SQLAlchemy model class (e.g., PackageVersion)

    Example (Composition Pattern):
        class PlatformVersionRepository:
            def __init__(self, session: AsyncSession) -> None:
                self._base_repo = BaseRepository(session, PlatformVersion)

            async def get(self, platform_version_id: int) -> Optional[PlatformVersion]:
                return await self._base_repo.get(platform_version_id)
    """

    def __init__(self, session: AsyncSession, model: type[ModelType]) -> None:
        self._session = session
        self._model = model
        self._logger = get_logger(f"{__name__}.{model.__name__}Repository")

    @property
    def session(self) -> AsyncSession:
        return self._session

    # ========================================================================
    # READ
    # ========================================================================

    @trace_database()
    async def get(self, entity_id: int) -> Optional[ModelType]:
        """Get entity by primary key, or None.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = select(self._model).where(getattr(self._model, "id") == entity_id)
            result = await self._session.execute(query)
            entity = result.scalar_one_or_none()

            self._logger.debug(
                "Entity found" if entity else "Entity not found",
                model=self._model.__name__,
                entity_id=entity_id
            )
            return entity

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to get entity",
                model=self._model.__name__,
                entity_id=entity_id,
                error=str(e)
            )
            raise RepositoryError(f"Failed to get entity: {e}") from e

    # ========================================================================
    # UPDATE / DELETE
    # ========================================================================

    @trace_database()
    async def update(self, entity_id: int, **kwargs: Any) -> Optional[ModelType]:
        """Update entity by id and return it, or None if it does not exist.

        Raises:
            ConflictError: If the update violates a constraint
            RepositoryError: For other database errors
        """
        try:
            query = (
                update(self._model)
                .where(getattr(self._model, "id") == entity_id)
                .values(**kwargs)
                .returning(self._model)
            )
            result = await self._session.execute(query)
            entity = result.scalar_one_or_none()

            self._logger.debug(
                "Entity updated" if entity else "Entity not found for update",
                model=self._model.__name__,
                entity_id=entity_id,
                fields=list(kwargs.keys())
            )
            return entity

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to update entity",
                model=self._model.__name__,
                entity_id=entity_id,
                error=str(e)
            )
            raise translate_error(e, "update entity") from e

    @trace_database()
    async def delete_where(self, *conditions: ColumnElement[bool]) -> int:
        """Delete every row matching ``conditions`` and return the row count.

        Raises:
            RepositoryError: For database errors
        """
        try:
            result = await self._session.execute(delete(self._model).where(*conditions))
            return int(getattr(result, "rowcount", 0) or 0)

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to delete entities",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to delete entities: {e}") from e

    # ========================================================================
    # COUNT
    # ========================================================================

    @trace_database()
    async def count(self, *conditions: ColumnElement[bool]) -> int:
        """Count entities matching ``conditions``.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = select(func.count(getattr(self._model, "id"))).where(*conditions)
            result = await self._session.execute(query)
            return result.scalar() or 0

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to count entities",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to count entities: {e}") from e

    # ========================================================================
    # KEYSET CHUNKING
    # ========================================================================

    async def iter_id_chunks(
        self,
        chunk_size: int,
        *conditions: ColumnElement[bool],
    ) -> AsyncIterator[list[int]]:
        """Yield ids of matching rows in ascending chunks of ``chunk_size``.

        Each chunk is fetched with ``id > last_seen`` rather than an offset,
        so rows committed between chunks never shift the page boundaries.

        Raises:
            ValueError: If chunk_size is not positive
            RepositoryError: For database errors
        """
        if chunk_size < 1:
            raise ValueError("Chunk size must be positive")

        id_column = getattr(self._model, "id")
        last_id = 0
        while True:
            try:
                query = (
                    select(id_column)
                    .where(id_column > last_id, *conditions)
                    .order_by(id_column)
                    .limit(chunk_size)
                )
                ids = list((await self._session.execute(query)).scalars().all())
            except SQLAlchemyError as e:
                self._logger.error(
                    "Failed to fetch id chunk",
                    model=self._model.__name__,
                    after_id=last_id,
                    error=str(e)
                )
                raise RepositoryError(f"Failed to fetch id chunk: {e}") from e

            if not ids:
                return
            yield ids
            if len(ids) < chunk_size:
                return
            last_id = ids[-1]

    # ========================================================================
    # TRANSACTION MANAGEMENT
    # ========================================================================

    async def commit(self) -> None:
        """Commit the current transaction.

        Raises:
            ConflictError: If a constraint is violated at commit
            RepositoryError: If commit fails
        """
        try:
            await self._session.commit()
            self._logger.debug("Transaction committed", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to commit transaction",
                model=self._model.__name__,
                error=str(e)
            )
            raise translate_error(e, "commit transaction") from e

    async def rollback(self) -> None:
        """Rollback the current transaction.

        Raises:
            RepositoryError: If rollback fails
        """
        try:
            await self._session.rollback()
            self._logger.debug("Transaction rolled back", model=self._model.__name__)
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to rollback transaction",
                model=self._model.__name__,
                error=str(e)
            )
            raise RepositoryError(f"Failed to rollback transaction: {e}") from e
