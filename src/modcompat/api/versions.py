"""Resolution endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from modcompat.api.schemas import (
    DependencyTreeOut,
    InstallPlanOut,
    ResolutionOut,
    VersionModel,
)
from modcompat.core.clock import ensure_utc
from modcompat.core.database import get_db
from modcompat.core.logging import get_logger
from modcompat.repositories import NotFoundError, RepositoryError
from modcompat.services import DependencyTreeBuilder, InstallSetResolver, VersionResolver

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v0", tags=["resolution"])

AS_OF_QUERY = Query(None, description="Evaluate visibility at this timestamp (default: now)")


def _as_of(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _storage_unavailable(e: RepositoryError) -> HTTPException:
    logger.error("Storage failure", error=str(e))
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Storage is unavailable, retry later",
    )


@router.post("/versions/{version_id}/resolve", response_model=ResolutionOut)
async def resolve_version(
    version_id: int,
    as_of: datetime | None = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> ResolutionOut:
    """Recompute and persist every resolved association owned by the version."""
    try:
        result = await VersionResolver(db).resolve(version_id, _as_of(as_of))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RepositoryError as e:
        raise _storage_unavailable(e) from e
    return ResolutionOut.from_result(result)


@router.get("/versions/{version_id}/dependency-tree", response_model=DependencyTreeOut)
async def dependency_tree(
    version_id: int,
    as_of: datetime | None = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> DependencyTreeOut:
    """Build the dependency tree rooted at the version from cached resolutions."""
    try:
        tree = await DependencyTreeBuilder(db).build(version_id, _as_of(as_of))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RepositoryError as e:
        raise _storage_unavailable(e) from e
    return DependencyTreeOut.from_tree(tree)


@router.get(
    "/addon-versions/{version_id}/compatible-mod-versions",
    response_model=list[VersionModel],
)
async def compatible_mod_versions(
    version_id: int,
    as_of: datetime | None = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> list[VersionModel]:
    """Host mod versions the addon version is compatible with, highest first."""
    try:
        versions = await DependencyTreeBuilder(db).compatible_host_versions(version_id, _as_of(as_of))
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except RepositoryError as e:
        raise _storage_unavailable(e) from e
    return [VersionModel.model_validate(version) for version in versions]


@router.get("/dependencies/resolve", response_model=InstallPlanOut)
async def resolve_install_set(
    mods: str = Query(
        ...,
        description="Comma-separated identifier:version pairs; identifier is a package id or GUID/slug",
        examples=["5:1.2.0,com.example.mod:2.0.5"],
    ),
    as_of: datetime | None = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> InstallPlanOut:
    """Resolve the combined dependencies of several mod versions."""
    try:
        plan = await InstallSetResolver(db).resolve(mods, _as_of(as_of))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except RepositoryError as e:
        raise _storage_unavailable(e) from e
    return InstallPlanOut.from_plan(plan)
