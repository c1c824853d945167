"""Read access to package versions and their packages."""

from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_database
from modcompat.identifiers import ById, BySlug, Identifier
from modcompat.models import Dependency, Package, PackageKind, PackageVersion
from modcompat.repositories.base import BaseRepository, RepositoryError
from modcompat.versioning.version import strip_prefix


class PackageVersionRepository:
    """Repository for PackageVersion entities using composition pattern.

    Every visibility-sensitive query takes an explicit ``as_of`` timestamp and
    applies the visibility rule to both the version and its owning package.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._base_repo = BaseRepository(session, PackageVersion)
        self._logger = get_logger(f"{__name__}.PackageVersionRepository")

    # ========================================================================
    # DELEGATED METHODS
    # ========================================================================

    async def get(self, version_id: int) -> Optional[PackageVersion]:
        return await self._base_repo.get(version_id)

    async def update(self, version_id: int, **kwargs: Any) -> Optional[PackageVersion]:
        return await self._base_repo.update(version_id, **kwargs)

    async def commit(self) -> None:
        await self._base_repo.commit()

    async def rollback(self) -> None:
        await self._base_repo.rollback()

    # ========================================================================
    # VERSION-SPECIFIC QUERIES
    # ========================================================================

    @trace_database()
    async def get_with_package(self, version_id: int) -> Optional[PackageVersion]:
        """Load a version together with its package and the package's host mod.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = (
                select(PackageVersion)
                .options(joinedload(PackageVersion.package).joinedload(Package.host_mod))
                .where(PackageVersion.id == version_id)
            )
            return (await self._session.execute(query)).unique().scalar_one_or_none()
        except SQLAlchemyError as e:
            self._logger.error("Failed to load version", version_id=version_id, error=str(e))
            raise RepositoryError(f"Failed to load version: {e}") from e

    @trace_database()
    async def dependencies_of(self, version_id: int) -> list[Dependency]:
        """Declared dependencies of a version, ordered by id.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = (
                select(Dependency)
                .where(Dependency.source_version_id == version_id)
                .order_by(Dependency.id)
            )
            return list((await self._session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            self._logger.error("Failed to load dependencies", version_id=version_id, error=str(e))
            raise RepositoryError(f"Failed to load dependencies: {e}") from e

    @trace_database()
    async def visible_versions_for_packages(
        self,
        package_ids: Iterable[int],
        as_of: datetime,
    ) -> dict[int, list[PackageVersion]]:
        """Visible versions grouped by package id.

        Packages that are themselves invisible, or have no visible versions,
        are absent from the result.

        Raises:
            RepositoryError: For database errors
        """
        ids = sorted(set(package_ids))
        if not ids:
            return {}
        try:
            query = (
                select(PackageVersion)
                .join(Package, Package.id == PackageVersion.package_id)
                .where(
                    PackageVersion.package_id.in_(ids),
                    PackageVersion.visible_clause(as_of),
                    Package.visible_clause(as_of),
                )
                .order_by(PackageVersion.id)
            )
            rows = (await self._session.execute(query)).scalars().all()
        except SQLAlchemyError as e:
            self._logger.error("Failed to load candidate versions", package_ids=ids, error=str(e))
            raise RepositoryError(f"Failed to load candidate versions: {e}") from e

        grouped: dict[int, list[PackageVersion]] = defaultdict(list)
        for row in rows:
            grouped[row.package_id].append(row)
        return dict(grouped)

    @trace_database()
    async def find_visible(
        self,
        identifier: Identifier,
        version: str,
        as_of: datetime,
        kind: PackageKind = PackageKind.MOD,
    ) -> Optional[PackageVersion]:
        """Find the visible version ``version`` of the package ``identifier`` names.

        The version string must match exactly (a leading ``v`` is ignored, as
        it is when versions are stored).

        Raises:
            RepositoryError: For database errors
        """
        query = (
            select(PackageVersion)
            .join(Package, Package.id == PackageVersion.package_id)
            .options(joinedload(PackageVersion.package))
            .where(
                PackageVersion.version == strip_prefix(version),
                Package.kind == kind,
                PackageVersion.visible_clause(as_of),
                Package.visible_clause(as_of),
            )
            .limit(1)
        )
        match identifier:
            case ById(package_id=package_id):
                query = query.where(Package.id == package_id).order_by(PackageVersion.id)
            case BySlug(slug=slug):
                query = query.where(or_(Package.guid == slug, Package.slug == slug)).order_by(
                    case((Package.guid == slug, 0), else_=1), PackageVersion.id
                )
        try:
            return (await self._session.execute(query)).unique().scalar_one_or_none()
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to find version",
                identifier=str(identifier),
                version=version,
                error=str(e),
            )
            raise RepositoryError(f"Failed to find version: {e}") from e

    def iter_id_chunks(
        self,
        chunk_size: int,
        kind: PackageKind | None = None,
    ) -> AsyncIterator[list[int]]:
        """Yield version ids in keyset chunks, optionally limited to one package kind."""
        conditions = []
        if kind is not None:
            conditions.append(
                PackageVersion.package_id.in_(select(Package.id).where(Package.kind == kind))
            )
        return self._base_repo.iter_id_chunks(chunk_size, *conditions)
