"""``modcompat-jobs`` command-line entry points for the external scheduler.

Commands:
    resolve          Sweep all versions of a package kind in chunks.
    propagate-pins   Release pins on published platform versions.
    resolve-version  Recompute one version.

Usage::

    modcompat-jobs resolve --kind mod --chunk-size 500
    modcompat-jobs propagate-pins
    modcompat-jobs resolve-version 42

Exit Codes:
    0 on success (including a run skipped because another holds the lock),
    1 when storage fails, so the scheduler retries.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import click
import structlog

from modcompat import __version__
from modcompat.core.cache import cache_client
from modcompat.core.clock import parse_as_of
from modcompat.core.database import async_session_maker, close_database
from modcompat.core.logging import configure_logging, get_logger
from modcompat.core.tracing import configure_tracing
from modcompat.jobs.batch import ResolutionSweep, propagate_pins, resolve_version
from modcompat.models import PackageKind
from modcompat.repositories import NotFoundError, RepositoryError

logger = get_logger(__name__)

T = TypeVar("T")

KINDS = {"mod": PackageKind.MOD, "addon": PackageKind.ADDON, "all": None}


def _as_of(ctx: click.Context, param: click.Parameter, value: str | None) -> datetime:
    try:
        return parse_as_of(value)
    except ValueError as e:
        raise click.BadParameter(f"not an ISO 8601 timestamp: {value}") from e


as_of_option = click.option(
    "--as-of",
    callback=_as_of,
    default=None,
    help="Evaluate visibility at this ISO 8601 timestamp (default: now).",
)


def _run(job: str, main: Callable[[], Awaitable[T]]) -> T:
    """Run a job coroutine, mapping storage failures to exit code 1."""

    async def runner() -> T:
        structlog.contextvars.bind_contextvars(job=job)
        try:
            return await main()
        finally:
            await close_database()
            structlog.contextvars.clear_contextvars()

    try:
        return asyncio.run(runner())
    except NotFoundError as e:
        click.echo(str(e), err=True)
        sys.exit(1)
    except RepositoryError as e:
        logger.error("Job failed", job=job, error=str(e))
        click.echo(f"{job} failed: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Batch jobs for the dependency resolution engine."""
    configure_logging()
    configure_tracing()


@cli.command("resolve")
@click.option(
    "--kind",
    type=click.Choice(sorted(KINDS)),
    default="all",
    show_default=True,
    help="Package kind to sweep.",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(1, 1000),
    default=None,
    help="Versions per chunk (default: RESOLVER_CHUNK_SIZE).",
)
@as_of_option
def resolve_command(kind: str, chunk_size: int | None, as_of: datetime) -> None:
    """Resolve every version of KIND, chunk by chunk.

    SIGINT or SIGTERM stops the sweep after the current chunk.
    """
    sweep = ResolutionSweep(async_session_maker, chunk_size=chunk_size, lock_client=cache_client)

    async def main() -> Any:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, sweep.request_stop)
            except (NotImplementedError, RuntimeError):
                # not available on this platform or outside the main thread
                pass
        return await sweep.run(KINDS[kind], as_of)

    report = _run("resolve", main)
    if report.skipped:
        click.echo(f"resolve[{report.kind}]: skipped, another run holds the lock")
        return
    suffix = " (stopped early)" if report.stopped_early else ""
    click.echo(
        f"resolve[{report.kind}]: {report.versions_processed} versions, "
        f"{report.writes} rows written, {report.chunks} chunks{suffix}"
    )


@cli.command("propagate-pins")
@as_of_option
def propagate_pins_command(as_of: datetime) -> None:
    """Auto-publish pinned versions whose platform versions have published."""
    report = _run("propagate-pins", lambda: propagate_pins(async_session_maker, as_of, cache_client))
    if report is None:
        click.echo("propagate-pins: skipped, another run holds the lock")
        return
    click.echo(
        f"propagate-pins: {report.platform_versions_processed} platform versions, "
        f"{report.pins_cleared} pins cleared, {len(report.published_version_ids)} versions published"
    )


@cli.command("resolve-version")
@click.argument("version_id", type=click.IntRange(min=1))
@as_of_option
def resolve_version_command(version_id: int, as_of: datetime) -> None:
    """Recompute the resolved associations of VERSION_ID."""
    writes = _run("resolve-version", lambda: resolve_version(async_session_maker, version_id, as_of))
    click.echo(f"resolve-version {version_id}: {writes} rows written")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
