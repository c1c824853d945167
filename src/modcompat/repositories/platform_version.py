"""Repository for platform versions and publish-date pins."""

from datetime import datetime

from sqlalchemy import exists, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.clock import ensure_utc
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_database
from modcompat.models import PinPlatformLink, PlatformVersion
from modcompat.repositories.base import BaseRepository, RepositoryError


class PlatformVersionRepository:
    """Repository for PlatformVersion entities and their PinPlatformLink rows."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._base_repo = BaseRepository(session, PlatformVersion)
        self._pins = BaseRepository(session, PinPlatformLink)
        self._logger = get_logger(f"{__name__}.PlatformVersionRepository")

    @trace_database()
    async def published(self, as_of: datetime) -> list[PlatformVersion]:
        """Platform versions published as of ``as_of``, ordered by id.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = (
                select(PlatformVersion)
                .where(PlatformVersion.published_clause(as_of))
                .order_by(PlatformVersion.id)
            )
            return list((await self._session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            self._logger.error("Failed to load platform versions", error=str(e))
            raise RepositoryError(f"Failed to load platform versions: {e}") from e

    @trace_database()
    async def published_with_pending_pins(self, as_of: datetime) -> list[PlatformVersion]:
        """Published platform versions that still have at least one pin.

        Ordered by publish date so older releases release their pins first.

        Raises:
            RepositoryError: For database errors
        """
        try:
            has_pins = exists().where(PinPlatformLink.platform_version_id == PlatformVersion.id)
            query = (
                select(PlatformVersion)
                .where(PlatformVersion.published_clause(as_of), has_pins)
                .order_by(PlatformVersion.published_at, PlatformVersion.id)
            )
            return list((await self._session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            self._logger.error("Failed to load pinned platform versions", error=str(e))
            raise RepositoryError(f"Failed to load pinned platform versions: {e}") from e

    @trace_database()
    async def pinned_mod_version_ids(self, platform_version_id: int) -> list[int]:
        """Mod versions pinned to ``platform_version_id``.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = (
                select(PinPlatformLink.mod_version_id)
                .where(PinPlatformLink.platform_version_id == platform_version_id)
                .order_by(PinPlatformLink.mod_version_id)
            )
            return list((await self._session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to load pins",
                platform_version_id=platform_version_id,
                error=str(e),
            )
            raise RepositoryError(f"Failed to load pins: {e}") from e

    @trace_database()
    async def count_blocking_pins(
        self,
        mod_version_id: int,
        excluding_platform_version_id: int,
        as_of: datetime,
    ) -> int:
        """Count other pins on the mod version whose platform version has not published.

        A platform version with no publish date counts as unpublished.

        Raises:
            RepositoryError: For database errors
        """
        return await self._pins.count(
            PinPlatformLink.mod_version_id == mod_version_id,
            PinPlatformLink.platform_version_id != excluding_platform_version_id,
            PinPlatformLink.platform_version_id.in_(
                select(PlatformVersion.id).where(
                    or_(
                        PlatformVersion.published_at.is_(None),
                        PlatformVersion.published_at > ensure_utc(as_of),
                    )
                )
            ),
        )

    async def delete_pin(self, mod_version_id: int, platform_version_id: int) -> int:
        """Remove the pin between a mod version and a platform version."""
        return await self._pins.delete_where(
            PinPlatformLink.mod_version_id == mod_version_id,
            PinPlatformLink.platform_version_id == platform_version_id,
        )

    async def commit(self) -> None:
        await self._base_repo.commit()

    async def rollback(self) -> None:
        await self._base_repo.rollback()
