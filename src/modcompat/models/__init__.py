"""Database models."""

from modcompat.models.addon_compatibility import AddonCompatibility
from modcompat.models.base import Base, IntegerIDMixin, TimestampMixin
from modcompat.models.dependency import Dependency, ResolvedDependency
from modcompat.models.package import Package, PackageKind
from modcompat.models.package_version import PackageVersion
from modcompat.models.platform_version import PinPlatformLink, PlatformVersion

__all__ = [
    "Base",
    "TimestampMixin",
    "IntegerIDMixin",
    "AddonCompatibility",
    "Dependency",
    "Package",
    "PackageKind",
    "PackageVersion",
    "PinPlatformLink",
    "PlatformVersion",
    "ResolvedDependency",
]
