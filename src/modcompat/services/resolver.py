"""Version resolver.

Recomputes and persists every resolved association owned by one package
version:

- each declared dependency resolves to the best visible version of its target
  package (``ResolvedDependency``);
- a mod version's platform constraint resolves to the best published platform
  version (``PackageVersion.resolved_platform_version_id``);
- an addon version's host-mod constraint resolves to the full set of visible
  host versions it accepts (``AddonCompatibility``).

Each flow gathers candidates, filters them to what is visible as of the given
timestamp, runs the constraint satisfier and writes the result through with a
diff-and-replace. The writes for one version are committed together.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.clock import ensure_utc, utcnow
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_async
from modcompat.models import PackageKind, PackageVersion, PlatformVersion
from modcompat.repositories import (
    ConflictError,
    NotFoundError,
    PackageVersionRepository,
    PlatformVersionRepository,
    RepositoryError,
    ResolutionRepository,
)
from modcompat.versioning import best, satisfying

logger = get_logger(__name__)


def _version_string(row: PackageVersion | PlatformVersion) -> str:
    return row.version


@dataclass
class ResolutionResult:
    """Outcome of resolving one version.

    Attributes:
        version_id: The resolved source version
        kind: Kind of the owning package
        resolved_dependencies: Dependency id to chosen version id (None when nothing matches)
        platform_version_id: Chosen platform version (mods only)
        compatible_version_ids: Host mod versions the addon accepts (addons only)
        writes: Rows inserted, updated or deleted
    """

    version_id: int
    kind: PackageKind
    resolved_dependencies: dict[int, int | None] = field(default_factory=dict)
    platform_version_id: int | None = None
    compatible_version_ids: list[int] = field(default_factory=list)
    writes: int = 0


class VersionResolver:
    """Resolves the cached associations of package versions.

    Published platform versions are loaded once per ``as_of`` and reused for
    the resolver's lifetime, which suits a batch sweep over one timestamp.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._versions = PackageVersionRepository(session)
        self._platforms = PlatformVersionRepository(session)
        self._resolutions = ResolutionRepository(session)
        self._platform_candidates: dict[datetime, list[PlatformVersion]] = {}

    @trace_async("resolver.resolve", component="resolver")
    async def resolve(self, version_id: int, as_of: datetime | None = None) -> ResolutionResult:
        """Recompute and persist everything ``version_id`` owns.

        Idempotent: a second call with an unchanged catalog writes nothing.
        When a concurrent resolution of the same version inserts a row first,
        the unique-index violation is retried once against the fresh state, so
        the later writer's complete result stands.

        Raises:
            NotFoundError: If the version does not exist
            ConflictError: If the retry conflicts again
            RepositoryError: If storage fails; the version's writes are rolled back
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        try:
            return await self._resolve_once(version_id, as_of)
        except ConflictError as e:
            logger.warning(
                "Concurrent resolution of the same version, retrying",
                version_id=version_id,
                error=str(e),
            )
            return await self._resolve_once(version_id, as_of)

    async def _resolve_once(self, version_id: int, as_of: datetime) -> ResolutionResult:
        version = await self._versions.get_with_package(version_id)
        if version is None:
            raise NotFoundError(f"PackageVersion with id {version_id} not found")

        result = ResolutionResult(version_id=version.id, kind=version.package.kind)
        try:
            result.writes += await self._resolve_dependencies(version, as_of, result)
            if version.package.kind == PackageKind.ADDON:
                result.writes += await self._resolve_compatibility(version, as_of, result)
            else:
                result.writes += await self._resolve_platform(version, as_of, result)
            await self._versions.commit()
        except (RepositoryError, SQLAlchemyError) as e:
            logger.error("Resolution failed, rolling back", version_id=version_id, error=str(e))
            await self._versions.rollback()
            # rollback expires every loaded row
            self._platform_candidates.clear()
            if isinstance(e, RepositoryError):
                raise
            raise RepositoryError(f"Failed to resolve version {version_id}: {e}") from e

        logger.debug(
            "Version resolved",
            version_id=version.id,
            kind=result.kind.value,
            writes=result.writes,
        )
        return result

    async def _resolve_dependencies(
        self,
        version: PackageVersion,
        as_of: datetime,
        result: ResolutionResult,
    ) -> int:
        dependencies = await self._versions.dependencies_of(version.id)
        candidates = await self._versions.visible_versions_for_packages(
            (dependency.target_package_id for dependency in dependencies),
            as_of,
        )

        for dependency in dependencies:
            pool = candidates.get(dependency.target_package_id, [])
            if not pool:
                logger.debug(
                    "Dependency target has no visible versions",
                    dependency_id=dependency.id,
                    source_version_id=version.id,
                    target_package_id=dependency.target_package_id,
                )
                result.resolved_dependencies[dependency.id] = None
                continue

            match = best(
                dependency.constraint,
                pool,
                key=_version_string,
                dependency_id=dependency.id,
                source_version_id=version.id,
            )
            result.resolved_dependencies[dependency.id] = match.id if match else None

        return await self._resolutions.replace_resolved_dependencies(
            version.id, result.resolved_dependencies
        )

    async def _resolve_platform(
        self,
        version: PackageVersion,
        as_of: datetime,
        result: ResolutionResult,
    ) -> int:
        match: PlatformVersion | None = None
        if version.platform_constraint and version.platform_constraint.strip():
            match = best(
                version.platform_constraint,
                await self._published_platform_versions(as_of),
                key=_version_string,
                source_version_id=version.id,
                target="platform",
            )
        result.platform_version_id = match.id if match else None
        return await self._resolutions.set_resolved_platform_version(
            version, result.platform_version_id
        )

    async def _resolve_compatibility(
        self,
        version: PackageVersion,
        as_of: datetime,
        result: ResolutionResult,
    ) -> int:
        host_mod_id = version.package.host_mod_id
        constraint = version.mod_version_constraint
        matches: list[PackageVersion] = []

        if host_mod_id is None:
            logger.debug("Addon is detached from its host mod", addon_version_id=version.id)
        elif not constraint or not constraint.strip():
            logger.debug("Addon version declares no host constraint", addon_version_id=version.id)
        else:
            pool = (await self._versions.visible_versions_for_packages([host_mod_id], as_of)).get(
                host_mod_id, []
            )
            matches = satisfying(
                constraint,
                pool,
                key=_version_string,
                addon_version_id=version.id,
                host_mod_id=host_mod_id,
            )

        result.compatible_version_ids = sorted(match.id for match in matches)
        return await self._resolutions.replace_addon_compatibility(
            version.id, result.compatible_version_ids
        )

    async def _published_platform_versions(self, as_of: datetime) -> list[PlatformVersion]:
        if as_of not in self._platform_candidates:
            self._platform_candidates[as_of] = await self._platforms.published(as_of)
        return self._platform_candidates[as_of]
