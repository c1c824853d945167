"""Test the batch sweep and job entry points."""

from datetime import datetime
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modcompat.core.cache import LOCK_PREFIX, acquire_lock
from modcompat.jobs.batch import (
    PIN_JOB,
    RESOLVE_JOB,
    ResolutionSweep,
    propagate_pins,
    resolve_version,
)
from modcompat.models import PackageKind
from modcompat.repositories import ConflictError, NotFoundError, ResolutionRepository
from modcompat.services import VersionResolver
from tests.factories import (
    create_dependency,
    create_mod_with_versions,
    create_package,
    create_pin,
    create_platform_version,
    create_version,
    resolved_count,
)


async def seed_chain(db_session: AsyncSession, count: int) -> list[int]:
    """``count`` mod versions, each depending on the shared lib; returns their ids."""
    lib, _ = await create_mod_with_versions(db_session, "1.0.0", "1.1.0")
    ids = []
    for _ in range(count - 2):
        version = await create_version(db_session, await create_package(db_session), "1.0.0")
        await create_dependency(db_session, version, lib, "^1.0")
        ids.append(version.id)
    await db_session.commit()
    return ids


class TestResolutionSweep:
    """Test ResolutionSweep.run()."""

    async def test_sweeps_every_version_in_chunks(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        dependents = await seed_chain(db_session, 5)

        report = await ResolutionSweep(session_factory, chunk_size=2, lock_client=cache).run(None, now)

        assert report.kind == "all"
        assert report.versions_processed == 5
        assert report.chunks == 3
        assert report.writes == len(dependents)
        assert report.stopped_early is False
        assert report.skipped is False
        async with session_factory() as session:
            for version_id in dependents:
                assert await resolved_count(session, version_id) == 1

    async def test_rerun_is_a_no_op(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        await seed_chain(db_session, 4)
        sweep = ResolutionSweep(session_factory, chunk_size=3, lock_client=cache)

        await sweep.run(None, now)
        second = await sweep.run(None, now)

        assert second.versions_processed == 4
        assert second.writes == 0

    async def test_kind_filter(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        host, _ = await create_mod_with_versions(db_session, "1.0.0", "1.1.0")
        addon = await create_package(db_session, PackageKind.ADDON, host_mod_id=host.id)
        await create_version(db_session, addon, "1.0.0", mod_version_constraint="^1.0")
        await db_session.commit()

        report = await ResolutionSweep(session_factory, lock_client=cache).run(PackageKind.ADDON, now)

        assert report.kind == "addon"
        assert report.versions_processed == 1
        assert report.writes == 2

    async def test_skipped_while_lock_held(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        """A second run of the same sweep is suppressed."""
        await seed_chain(db_session, 3)
        await acquire_lock(cache, f"{RESOLVE_JOB}:all", 60)

        report = await ResolutionSweep(session_factory, lock_client=cache).run(None, now)

        assert report.skipped is True
        assert report.versions_processed == 0

    async def test_other_kind_not_blocked(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        await seed_chain(db_session, 3)
        await acquire_lock(cache, f"{RESOLVE_JOB}:addon", 60)

        report = await ResolutionSweep(session_factory, lock_client=cache).run(PackageKind.MOD, now)

        assert report.skipped is False
        assert report.versions_processed == 3

    async def test_lock_released_after_run(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        await seed_chain(db_session, 3)

        await ResolutionSweep(session_factory, lock_client=cache).run(None, now)

        assert await cache.get(f"{LOCK_PREFIX}{RESOLVE_JOB}:all") is None

    async def test_stop_after_current_chunk(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        await seed_chain(db_session, 6)
        sweep = ResolutionSweep(session_factory, chunk_size=2, lock_client=cache)
        sweep.request_stop()

        report = await sweep.run(None, now)

        assert report.stopped_early is True
        assert report.chunks == 1
        assert report.versions_processed == 2

    async def test_vanished_version_counted_missing(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
        monkeypatch: Any,
    ) -> None:
        """A version deleted between reading the chunk and resolving it is skipped."""
        dependents = await seed_chain(db_session, 4)
        vanished = dependents[0]
        original = VersionResolver.resolve

        async def resolve(self: VersionResolver, version_id: int, as_of: datetime | None = None) -> Any:
            if version_id == vanished:
                raise NotFoundError(f"PackageVersion with id {version_id} not found")
            return await original(self, version_id, as_of)

        monkeypatch.setattr(VersionResolver, "resolve", resolve)

        report = await ResolutionSweep(session_factory, lock_client=cache).run(None, now)

        assert report.missing == 1
        assert report.versions_processed == 3

    async def test_contended_version_never_aborts_sweep(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
        monkeypatch: Any,
    ) -> None:
        """A resolve racing another writer is retried, then skipped if still contended."""
        raced, contended = await seed_chain(db_session, 4)
        replace = ResolutionRepository.replace_resolved_dependencies
        attempts: dict[int, int] = {}

        async def racing_replace(self: ResolutionRepository, source_version_id: int, resolutions: Any) -> int:
            attempts[source_version_id] = attempts.get(source_version_id, 0) + 1
            if source_version_id == contended or (source_version_id == raced and attempts[raced] == 1):
                raise ConflictError("Failed to replace resolved dependencies: UNIQUE constraint failed")
            return await replace(self, source_version_id, resolutions)

        monkeypatch.setattr(ResolutionRepository, "replace_resolved_dependencies", racing_replace)

        report = await ResolutionSweep(session_factory, lock_client=cache).run(None, now)

        assert attempts[raced] == 2
        assert attempts[contended] == 2
        assert report.conflicts == 1
        assert report.versions_processed == 3
        async with session_factory() as session:
            assert await resolved_count(session, raced) == 1
            assert await resolved_count(session, contended) == 0


class TestJobEntryPoints:
    """Test propagate_pins() and resolve_version()."""

    async def test_propagate_pins(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        platform = await create_platform_version(db_session, "1.0.0")
        version = await create_version(db_session, await create_package(db_session), "1.0.0", published_at=None)
        await create_pin(db_session, version, platform)
        await db_session.commit()

        report = await propagate_pins(session_factory, now, cache)

        assert report is not None
        assert report.published_version_ids == [version.id]

    async def test_propagate_pins_skipped_while_locked(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Redis,
        now: datetime,
    ) -> None:
        await acquire_lock(cache, PIN_JOB, 60)

        assert await propagate_pins(session_factory, now, cache) is None

    async def test_resolve_version(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        now: datetime,
    ) -> None:
        (dependent,) = await seed_chain(db_session, 3)

        assert await resolve_version(session_factory, dependent, now) == 1
        assert await resolve_version(session_factory, dependent, now) == 0
