"""Database seed script with a small demo catalog.

This script populates the database with a handful of platform versions,
mods, addons, and dependency edges, then runs one resolution sweep so the
cached resolutions are ready to query.

Usage:
    # Local development (schema from `alembic upgrade head`)
    uv run python seed.py

    # Docker
    docker compose exec api uv run python seed.py

Features:
    - Idempotent: Safe to run multiple times
    - Covers the interesting cases: a shared library pulled at two ranges,
      a dependency cycle, an addon with a host constraint, and a mod held
      back by a platform pin
"""

import asyncio
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.cache import cache_client
from modcompat.core.database import async_session_maker, close_database
from modcompat.core.logging import configure_logging, get_logger
from modcompat.jobs.batch import ResolutionSweep, propagate_pins
from modcompat.models import (
    Dependency,
    Package,
    PackageKind,
    PackageVersion,
    PinPlatformLink,
    PlatformVersion,
)

configure_logging()
logger = get_logger(__name__)

LAUNCH = datetime(2025, 1, 1, tzinfo=UTC)

# version -> days after launch; None keeps the release scheduled but unpublished
PLATFORM_VERSIONS = {
    "1.0.0": 0,
    "1.1.0": 60,
    "2.0.0": None,
}

MODS = [
    {
        "slug": "corelib",
        "name": "Core Library",
        "guid": "dev.modcompat.corelib",
        "versions": {"1.0.0": 1, "1.4.0": 20, "2.0.0": 90},
        "platform_constraint": "^1.0",
    },
    {
        "slug": "worldgen",
        "name": "World Generation",
        "guid": "dev.modcompat.worldgen",
        "versions": {"1.0.0": 5, "1.1.0": 40},
        "platform_constraint": ">=1.0.0",
    },
    {
        "slug": "biomes",
        "name": "Extra Biomes",
        "guid": None,
        "versions": {"0.9.0": 10, "1.0.0": 45},
        "platform_constraint": "~1.1.0",
    },
    {
        "slug": "nightfall",
        "name": "Nightfall",
        "guid": None,
        "versions": {"3.0.0": None},
        "platform_constraint": "^2.0",
    },
]

# (source slug, source version, target slug, constraint)
DEPENDENCIES = [
    ("worldgen", "1.0.0", "corelib", "^1.0"),
    ("worldgen", "1.1.0", "corelib", ">=1.4.0"),
    ("biomes", "1.0.0", "worldgen", "^1.0"),
    ("biomes", "1.0.0", "corelib", "~1.4.0"),
    # worldgen and biomes reference each other
    ("worldgen", "1.1.0", "biomes", "*"),
]

ADDONS = [
    {
        "slug": "worldgen-caves",
        "name": "Worldgen: Caves",
        "host": "worldgen",
        "versions": {"1.0.0": (6, "^1.0")},
    },
]

# (mod slug, mod version, platform version)
PINS = [
    ("nightfall", "3.0.0", "2.0.0"),
]


def _at(days: int | None) -> datetime | None:
    return None if days is None else LAUNCH + timedelta(days=days)


async def check_if_seeded(session: AsyncSession) -> bool:
    """Check if the demo catalog already exists."""
    result = await session.execute(select(Package.id).where(Package.slug == MODS[0]["slug"]))
    return result.first() is not None


async def seed_platform_versions(session: AsyncSession) -> dict[str, PlatformVersion]:
    logger.info("Seeding platform versions")

    platform_versions = {}
    for version, days in PLATFORM_VERSIONS.items():
        platform_version = PlatformVersion(version=version, published_at=_at(days))
        session.add(platform_version)
        platform_versions[version] = platform_version

    await session.flush()
    return platform_versions


async def seed_mods(
    session: AsyncSession,
) -> tuple[dict[str, Package], dict[tuple[str, str], PackageVersion]]:
    """Create mod packages and their versions.

    Returns:
        Packages by slug, and versions by (slug, version)
    """
    logger.info("Seeding mods")

    packages = {}
    versions = {}
    for mod_data in MODS:
        package = Package(
            kind=PackageKind.MOD,
            name=mod_data["name"],
            slug=mod_data["slug"],
            guid=mod_data["guid"],
            published_at=LAUNCH,
        )
        session.add(package)
        packages[package.slug] = package

        for version, days in mod_data["versions"].items():
            package_version = PackageVersion(
                package=package,
                version=version,
                published_at=_at(days),
                platform_constraint=mod_data["platform_constraint"],
            )
            session.add(package_version)
            versions[(package.slug, version)] = package_version

        logger.info(f"Created mod: {package.slug} ({len(mod_data['versions'])} versions)")

    await session.flush()
    return packages, versions


async def seed_addons(session: AsyncSession, packages: dict[str, Package]) -> None:
    logger.info("Seeding addons")

    for addon_data in ADDONS:
        addon = Package(
            kind=PackageKind.ADDON,
            name=addon_data["name"],
            slug=addon_data["slug"],
            host_mod_id=packages[addon_data["host"]].id,
            published_at=LAUNCH,
        )
        session.add(addon)
        for version, (days, host_constraint) in addon_data["versions"].items():
            session.add(
                PackageVersion(
                    package=addon,
                    version=version,
                    published_at=_at(days),
                    mod_version_constraint=host_constraint,
                )
            )
        logger.info(f"Created addon: {addon.slug} -> {addon_data['host']}")

    await session.flush()


async def seed_dependencies_and_pins(
    session: AsyncSession,
    packages: dict[str, Package],
    versions: dict[tuple[str, str], PackageVersion],
    platform_versions: dict[str, PlatformVersion],
) -> None:
    logger.info("Seeding dependencies and pins")

    for source_slug, source_version, target_slug, constraint in DEPENDENCIES:
        session.add(
            Dependency(
                source_version_id=versions[(source_slug, source_version)].id,
                target_package_id=packages[target_slug].id,
                constraint=constraint,
            )
        )
        logger.info(f"Created dependency: {source_slug}@{source_version} -> {target_slug} {constraint}")

    for mod_slug, mod_version, platform_version in PINS:
        session.add(
            PinPlatformLink(
                mod_version_id=versions[(mod_slug, mod_version)].id,
                platform_version_id=platform_versions[platform_version].id,
            )
        )
        logger.info(f"Pinned {mod_slug}@{mod_version} to platform {platform_version}")

    await session.flush()


async def seed_database() -> None:
    """Main seeding function."""
    logger.info("Starting database seeding")

    async with async_session_maker() as session:
        try:
            if await check_if_seeded(session):
                logger.info("Database already contains the demo catalog. Skipping seed (idempotent).")
                return

            platform_versions = await seed_platform_versions(session)
            packages, versions = await seed_mods(session)
            await seed_addons(session, packages)
            await seed_dependencies_and_pins(session, packages, versions, platform_versions)

            await session.commit()
            logger.info(
                "Catalog seeded",
                platform_versions=len(platform_versions),
                packages=len(packages) + len(ADDONS),
                versions=len(versions),
                dependencies=len(DEPENDENCIES),
            )

        except Exception as e:
            logger.error(f"Error seeding database: {e}")
            await session.rollback()
            raise

    sweep = await ResolutionSweep(async_session_maker, lock_client=cache_client).run()
    logger.info("Initial resolution completed", versions=sweep.versions_processed, writes=sweep.writes)

    pins = await propagate_pins(async_session_maker, lock_client=cache_client)
    if pins is not None:
        logger.info("Pin propagation completed", published=pins.published_version_ids)


async def main() -> None:
    try:
        await seed_database()
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
