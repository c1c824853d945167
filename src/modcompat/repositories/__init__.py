"""Repository layer for database operations.

This module provides the repository pattern implementation for data access.
Repositories encapsulate database operations and provide a clean API for
the resolution services.
"""

from modcompat.repositories.base import (
    BaseRepository,
    ConflictError,
    NotFoundError,
    RepositoryError,
)
from modcompat.repositories.package_version import PackageVersionRepository
from modcompat.repositories.platform_version import PlatformVersionRepository
from modcompat.repositories.resolution import LiveEdge, ResolutionRepository

__all__ = [
    "BaseRepository",
    "ConflictError",
    "LiveEdge",
    "NotFoundError",
    "PackageVersionRepository",
    "PlatformVersionRepository",
    "RepositoryError",
    "ResolutionRepository",
]
