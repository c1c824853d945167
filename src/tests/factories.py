"""Model factory functions for testing.

Provides simple factory functions to create catalog rows with reasonable defaults.
Each factory accepts optional kwargs to override defaults and persists the row
with a flush so its id is available. Callers commit when they are done arranging.

Example:
    mod = await create_package(db_session, name="Core Lib")
    v1 = await create_version(db_session, mod, "1.0.0")
    app_v = await create_version(db_session, app_mod, "2.0.0")
    await create_dependency(db_session, app_v, mod, "^1.0.0")
    await db_session.commit()
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.models import (
    AddonCompatibility,
    Dependency,
    Package,
    PackageKind,
    PackageVersion,
    PinPlatformLink,
    PlatformVersion,
    ResolvedDependency,
)

# Published well before the NOW fixture
PUBLISHED = datetime(2025, 1, 1, tzinfo=UTC)

_UNSET: Any = object()


async def create_package(
    db_session: AsyncSession,
    kind: PackageKind = PackageKind.MOD,
    **kwargs: Any,
) -> Package:
    """Create a Package.

    Example:
        addon = await create_package(db_session, PackageKind.ADDON, host_mod_id=mod.id)
    """
    suffix = uuid.uuid4().hex[:8]
    defaults = {
        "kind": kind,
        "name": kwargs.pop("name", f"Test Package {suffix}"),
        "slug": kwargs.pop("slug", f"test-package-{suffix}"),
        "guid": kwargs.pop("guid", None),
        "published_at": kwargs.pop("published_at", PUBLISHED),
        "disabled": kwargs.pop("disabled", False),
    }
    package = Package(**defaults, **kwargs)
    db_session.add(package)
    await db_session.flush()
    return package


async def create_version(
    db_session: AsyncSession,
    package: Package,
    version: str = "1.0.0",
    published_at: datetime | None = _UNSET,
    **kwargs: Any,
) -> PackageVersion:
    """Create a PackageVersion of ``package``, published by default.

    Pass ``published_at=None`` for an unpublished version.
    """
    row = PackageVersion(
        package_id=package.id,
        version=version,
        published_at=PUBLISHED if published_at is _UNSET else published_at,
        disabled=kwargs.pop("disabled", False),
        **kwargs,
    )
    db_session.add(row)
    await db_session.flush()
    return row


async def create_dependency(
    db_session: AsyncSession,
    source: PackageVersion,
    target: Package,
    constraint: str,
) -> Dependency:
    """Declare that ``source`` depends on ``target`` within ``constraint``."""
    dependency = Dependency(
        source_version_id=source.id,
        target_package_id=target.id,
        constraint=constraint,
    )
    db_session.add(dependency)
    await db_session.flush()
    return dependency


async def create_platform_version(
    db_session: AsyncSession,
    version: str,
    published_at: datetime | None = _UNSET,
) -> PlatformVersion:
    """Create a PlatformVersion, published by default."""
    row = PlatformVersion(
        version=version,
        published_at=PUBLISHED if published_at is _UNSET else published_at,
    )
    db_session.add(row)
    await db_session.flush()
    return row


async def create_pin(
    db_session: AsyncSession,
    mod_version: PackageVersion,
    platform_version: PlatformVersion,
) -> PinPlatformLink:
    """Hold ``mod_version`` until ``platform_version`` publishes."""
    pin = PinPlatformLink(
        mod_version_id=mod_version.id,
        platform_version_id=platform_version.id,
    )
    db_session.add(pin)
    await db_session.flush()
    return pin


async def create_mod_with_versions(
    db_session: AsyncSession,
    *versions: str,
    **kwargs: Any,
) -> tuple[Package, list[PackageVersion]]:
    """Create a mod and one published version per version string."""
    package = await create_package(db_session, **kwargs)
    rows = [await create_version(db_session, package, version) for version in versions]
    return package, rows


# Read-back helpers for assertions


async def count_rows(db_session: AsyncSession, model: type[Any], *conditions: ColumnElement[bool]) -> int:
    query = select(func.count()).select_from(model).where(*conditions)
    return (await db_session.execute(query)).scalar_one()


async def resolved_dependencies(db_session: AsyncSession, source_version_id: int) -> dict[int, int]:
    """Dependency id to resolved version id for one source version."""
    query = select(ResolvedDependency.dependency_id, ResolvedDependency.resolved_version_id).where(
        ResolvedDependency.source_version_id == source_version_id
    )
    return {dependency_id: version_id for dependency_id, version_id in (await db_session.execute(query)).all()}


async def compatibility_count(db_session: AsyncSession, addon_version_id: int) -> int:
    return await count_rows(db_session, AddonCompatibility, AddonCompatibility.addon_version_id == addon_version_id)


async def resolved_count(db_session: AsyncSession, source_version_id: int) -> int:
    return await count_rows(
        db_session, ResolvedDependency, ResolvedDependency.source_version_id == source_version_id
    )


async def pin_count(db_session: AsyncSession, mod_version_id: int) -> int:
    return await count_rows(db_session, PinPlatformLink, PinPlatformLink.mod_version_id == mod_version_id)
