"""Publish-date pinning propagator.

A mod version pinned to platform versions stays unpublished until every one
of them has published. Each run walks the published platform versions that
still carry pins; for each pinned mod version it auto-publishes the version
when no other pin is still pending, and removes the pin either way. One
platform version's sweep is one transaction.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.core.clock import ensure_utc, utcnow
from modcompat.core.logging import get_logger
from modcompat.core.tracing import trace_async
from modcompat.repositories import (
    PackageVersionRepository,
    PlatformVersionRepository,
    RepositoryError,
)

logger = get_logger(__name__)


@dataclass
class PinningReport:
    platform_versions_processed: int = 0
    pins_cleared: int = 0
    published_version_ids: list[int] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return self.pins_cleared + len(self.published_version_ids)


class PinningPropagator:
    """Promotes pinned mod versions once their platform versions publish."""

    def __init__(self, session: AsyncSession) -> None:
        self._versions = PackageVersionRepository(session)
        self._platforms = PlatformVersionRepository(session)

    @trace_async("pinning.run", component="pinning")
    async def run(self, as_of: datetime | None = None) -> PinningReport:
        """Process every published platform version with pending pins.

        Re-running against a fully propagated catalog writes nothing.

        Raises:
            RepositoryError: If storage fails; the current platform version's
                writes are rolled back, earlier ones stay committed
        """
        as_of = ensure_utc(as_of) if as_of is not None else utcnow()
        report = PinningReport()

        for platform_version in await self._platforms.published_with_pending_pins(as_of):
            try:
                await self._release(platform_version.id, as_of, report)
                await self._platforms.commit()
            except (RepositoryError, SQLAlchemyError) as e:
                logger.error(
                    "Pin propagation failed, rolling back",
                    platform_version_id=platform_version.id,
                    error=str(e),
                )
                await self._platforms.rollback()
                if isinstance(e, RepositoryError):
                    raise
                raise RepositoryError(f"Failed to propagate pins: {e}") from e
            report.platform_versions_processed += 1

        if report.platform_versions_processed:
            logger.info(
                "Pin propagation finished",
                platform_versions=report.platform_versions_processed,
                pins_cleared=report.pins_cleared,
                published=len(report.published_version_ids),
            )
        return report

    async def _release(self, platform_version_id: int, as_of: datetime, report: PinningReport) -> None:
        for mod_version_id in await self._platforms.pinned_mod_version_ids(platform_version_id):
            blocking = await self._platforms.count_blocking_pins(
                mod_version_id, platform_version_id, as_of
            )
            if blocking == 0:
                version = await self._versions.get(mod_version_id)
                if version is not None and version.published_at is None:
                    await self._versions.update(mod_version_id, published_at=as_of)
                    report.published_version_ids.append(mod_version_id)
                    logger.info(
                        "Pinned version auto-published",
                        mod_version_id=mod_version_id,
                        platform_version_id=platform_version_id,
                    )
            else:
                logger.debug(
                    "Version still held by pending pins",
                    mod_version_id=mod_version_id,
                    pending=blocking,
                )

            report.pins_cleared += await self._platforms.delete_pin(mod_version_id, platform_version_id)
