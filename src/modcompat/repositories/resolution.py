"""Repository for the resolved-association model.

Every write here is a diff-and-replace for one owner: the owner's rows are
compared with the freshly computed target state and only the difference is
written. Each method returns the number of rows it inserted, updated or
deleted, so an unchanged re-run reports zero.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_database
from modcompat.models import (
    AddonCompatibility,
    Dependency,
    Package,
    PackageKind,
    PackageVersion,
    ResolvedDependency,
)
from modcompat.repositories.base import RepositoryError, translate_error


@dataclass(frozen=True)
class LiveEdge:
    """A cached dependency edge whose resolved target is currently visible."""

    dependency_id: int
    constraint: str
    package: Package
    version: PackageVersion


class ResolutionRepository:
    """Reads and replaces cached resolutions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._logger = get_logger(f"{__name__}.ResolutionRepository")

    # ========================================================================
    # RESOLVED DEPENDENCIES
    # ========================================================================

    @trace_database()
    async def replace_resolved_dependencies(
        self,
        source_version_id: int,
        resolutions: Mapping[int, int | None],
    ) -> int:
        """Make the source version's resolved rows equal ``resolutions``.

        Args:
            source_version_id: Version owning the dependencies
            resolutions: Dependency id to chosen version id, None for no match

        Returns:
            Number of rows written

        Raises:
            ConflictError: On a constraint violation
            RepositoryError: For other database errors
        """
        try:
            query = select(ResolvedDependency).where(
                ResolvedDependency.source_version_id == source_version_id
            )
            existing = {
                row.dependency_id: row
                for row in (await self._session.execute(query)).scalars().all()
            }

            writes = 0
            for dependency_id, row in existing.items():
                target = resolutions.get(dependency_id)
                if target is None:
                    await self._session.delete(row)
                    writes += 1
                elif row.resolved_version_id != target:
                    row.resolved_version_id = target
                    writes += 1

            for dependency_id, target in resolutions.items():
                if target is not None and dependency_id not in existing:
                    self._session.add(
                        ResolvedDependency(
                            dependency_id=dependency_id,
                            source_version_id=source_version_id,
                            resolved_version_id=target,
                        )
                    )
                    writes += 1

            if writes:
                await self._session.flush()
            return writes

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to replace resolved dependencies",
                source_version_id=source_version_id,
                error=str(e),
            )
            raise translate_error(e, "replace resolved dependencies") from e

    @trace_database()
    async def set_resolved_platform_version(
        self,
        version: PackageVersion,
        platform_version_id: int | None,
    ) -> int:
        """Cache the best platform version on ``version``; 1 if it changed, else 0."""
        if version.resolved_platform_version_id == platform_version_id:
            return 0
        try:
            version.resolved_platform_version_id = platform_version_id
            await self._session.flush()
            return 1
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to cache platform version",
                version_id=version.id,
                error=str(e),
            )
            raise translate_error(e, "cache platform version") from e

    @trace_database()
    async def live_edges(self, version_id: int, as_of: datetime) -> list[LiveEdge]:
        """Cached edges out of ``version_id`` whose targets are visible mods.

        Raises:
            RepositoryError: For database errors
        """
        target = aliased(PackageVersion)
        try:
            query = (
                select(Dependency.id, Dependency.constraint, Package, target)
                .select_from(ResolvedDependency)
                .join(Dependency, Dependency.id == ResolvedDependency.dependency_id)
                .join(target, target.id == ResolvedDependency.resolved_version_id)
                .join(Package, Package.id == target.package_id)
                .where(
                    ResolvedDependency.source_version_id == version_id,
                    Package.kind == PackageKind.MOD,
                    target.visible_clause(as_of),
                    Package.visible_clause(as_of),
                )
                .order_by(Dependency.id)
            )
            rows = (await self._session.execute(query)).all()
        except SQLAlchemyError as e:
            self._logger.error("Failed to load dependency edges", version_id=version_id, error=str(e))
            raise RepositoryError(f"Failed to load dependency edges: {e}") from e
        return [
            LiveEdge(dependency_id=dep_id, constraint=constraint, package=package, version=version)
            for dep_id, constraint, package, version in rows
        ]

    # ========================================================================
    # ADDON COMPATIBILITY
    # ========================================================================

    @trace_database()
    async def replace_addon_compatibility(
        self,
        addon_version_id: int,
        mod_version_ids: Iterable[int],
    ) -> int:
        """Make the addon version's compatibility set equal ``mod_version_ids``.

        Returns:
            Number of rows inserted plus rows deleted

        Raises:
            ConflictError: On a constraint violation
            RepositoryError: For other database errors
        """
        wanted = set(mod_version_ids)
        try:
            query = select(AddonCompatibility).where(
                AddonCompatibility.addon_version_id == addon_version_id
            )
            existing = {
                row.mod_version_id: row
                for row in (await self._session.execute(query)).scalars().all()
            }

            writes = 0
            for mod_version_id, row in existing.items():
                if mod_version_id not in wanted:
                    await self._session.delete(row)
                    writes += 1
            for mod_version_id in sorted(wanted - existing.keys()):
                self._session.add(
                    AddonCompatibility(addon_version_id=addon_version_id, mod_version_id=mod_version_id)
                )
                writes += 1

            if writes:
                await self._session.flush()
            return writes

        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to replace addon compatibility",
                addon_version_id=addon_version_id,
                error=str(e),
            )
            raise translate_error(e, "replace addon compatibility") from e

    @trace_database()
    async def compatible_host_versions(
        self,
        addon_version_id: int,
        as_of: datetime,
    ) -> list[PackageVersion]:
        """Visible host mod versions in the addon version's compatibility set.

        Ordered from highest to lowest version.

        Raises:
            RepositoryError: For database errors
        """
        try:
            query = (
                select(PackageVersion)
                .join(AddonCompatibility, AddonCompatibility.mod_version_id == PackageVersion.id)
                .join(Package, Package.id == PackageVersion.package_id)
                .where(
                    AddonCompatibility.addon_version_id == addon_version_id,
                    PackageVersion.visible_clause(as_of),
                    Package.visible_clause(as_of),
                )
            )
            rows = list((await self._session.execute(query)).scalars().all())
        except SQLAlchemyError as e:
            self._logger.error(
                "Failed to load compatible versions",
                addon_version_id=addon_version_id,
                error=str(e),
            )
            raise RepositoryError(f"Failed to load compatible versions: {e}") from e
        return sorted(rows, key=lambda row: row.version_sort_key(), reverse=True)
