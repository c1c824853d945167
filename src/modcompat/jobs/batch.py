"""Batch entry points invoked by the external scheduler.

Each job takes a Valkey lock named after itself so overlapping runs of the
same job are skipped. The sweep walks version ids in keyset chunks, resolves
each version (one commit per version) and clears the session identity map
between chunks. A stop request takes effect after the current chunk.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modcompat.core.cache import job_lock
from modcompat.core.clock import ensure_utc, utcnow
from modcompat.core.config import settings
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_job
from modcompat.models import PackageKind
from modcompat.repositories import ConflictError, NotFoundError, PackageVersionRepository
from modcompat.services import PinningPropagator, PinningReport, VersionResolver

logger = get_logger(__name__)

RESOLVE_JOB = "resolve-versions"
PIN_JOB = "propagate-pins"


@dataclass
class SweepReport:
    kind: str
    versions_processed: int = 0
    writes: int = 0
    chunks: int = 0
    missing: int = 0
    conflicts: int = 0
    stopped_early: bool = False
    skipped: bool = False


class ResolutionSweep:
    """Resolves every version of one package kind (or all kinds) in chunks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chunk_size: int | None = None,
        lock_client: Any = None,
    ) -> None:
        self._session_factory = session_factory
        self._chunk_size = chunk_size or settings.resolver_chunk_size
        self._lock_client = lock_client
        self._stop_requested = False

    def request_stop(self) -> None:
        """Finish the current chunk, then stop."""
        if not self._stop_requested:
            logger.info("Stop requested, finishing current chunk")
        self._stop_requested = True

    @trace_job(RESOLVE_JOB)
    async def run(
        self,
        kind: PackageKind | None = None,
        as_of: datetime | None = None,
    ) -> SweepReport:
        """Sweep the catalog.

        Raises:
            RepositoryError: If storage fails; the scheduler retries the run
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        label = kind.value.lower() if kind is not None else "all"
        report = SweepReport(kind=label)

        async with job_lock(f"{RESOLVE_JOB}:{label}", client=self._lock_client) as acquired:
            if not acquired:
                logger.warning("Resolution sweep already running, skipping", kind=label)
                report.skipped = True
                return report

            logger.info(
                "Resolution sweep started",
                kind=label,
                chunk_size=self._chunk_size,
                as_of=as_of.isoformat(),
            )
            async with self._session_factory() as session:
                await self._sweep(session, kind, as_of, report)

        logger.info(
            "Resolution sweep finished",
            kind=label,
            versions=report.versions_processed,
            writes=report.writes,
            conflicts=report.conflicts,
            chunks=report.chunks,
            stopped_early=report.stopped_early,
        )
        return report

    async def _sweep(
        self,
        session: AsyncSession,
        kind: PackageKind | None,
        as_of: datetime,
        report: SweepReport,
    ) -> None:
        versions = PackageVersionRepository(session)
        resolver = VersionResolver(session)

        async for ids in versions.iter_id_chunks(self._chunk_size, kind=kind):
            for version_id in ids:
                try:
                    result = await resolver.resolve(version_id, as_of)
                except NotFoundError:
                    # deleted since the chunk was read
                    report.missing += 1
                    continue
                except ConflictError as e:
                    # another writer holds this version; its result stands
                    logger.warning("Skipping contended version", version_id=version_id, error=str(e))
                    report.conflicts += 1
                    continue
                report.versions_processed += 1
                report.writes += result.writes

            report.chunks += 1
            session.expunge_all()
            logger.debug(
                "Chunk resolved",
                chunk=report.chunks,
                last_id=ids[-1],
                versions=report.versions_processed,
            )
            if self._stop_requested:
                report.stopped_early = True
                break


@trace_job(PIN_JOB)
async def propagate_pins(
    session_factory: async_sessionmaker[AsyncSession],
    as_of: datetime | None = None,
    lock_client: Any = None,
) -> PinningReport | None:
    """Run the pinning propagator once; None when another run holds the lock."""
    async with job_lock(PIN_JOB, client=lock_client) as acquired:
        if not acquired:
            logger.warning("Pin propagation already running, skipping")
            return None
        async with session_factory() as session:
            return await PinningPropagator(session).run(as_of)


async def resolve_version(
    session_factory: async_sessionmaker[AsyncSession],
    version_id: int,
    as_of: datetime | None = None,
) -> int:
    """Resolve a single version and return the number of rows written."""
    async with session_factory() as session:
        result = await VersionResolver(session).resolve(version_id, as_of)
    return result.writes
