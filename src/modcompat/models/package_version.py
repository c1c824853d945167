"""PackageVersion model: one published revision of a mod or addon."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from modcompat.models.base import (
    Base,
    BigIntID,
    IntegerIDMixin,
    TimestampMixin,
    VersionNumberMixin,
    VisibilityMixin,
    generate_repr,
)

if TYPE_CHECKING:
    from modcompat.models.dependency import Dependency
    from modcompat.models.package import Package
    from modcompat.models.platform_version import PlatformVersion


class PackageVersion(Base, IntegerIDMixin, TimestampMixin, VisibilityMixin, VersionNumberMixin):
    """A version of a Package.

    Attributes:
        id: Primary key
        package_id: Owning package
        version: Version string; parsed parts live in version_major/minor/patch/labels
        disabled: Moderation flag
        published_at: Publish timestamp, None while unpublished or held by a pin
        platform_constraint: Mods only; constraint against platform versions
        resolved_platform_version_id: Cached best platform version for the constraint
        mod_version_constraint: Addons only; constraint against host mod versions
        dependencies: Declared dependency edges
    """

    __tablename__ = "package_versions"

    package_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform_constraint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolved_platform_version_id: Mapped[int | None] = mapped_column(
        BigIntID,
        ForeignKey("platform_versions.id", ondelete="SET NULL"),
        nullable=True,
    )
    mod_version_constraint: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    package: Mapped[Package] = relationship("Package", back_populates="versions")
    dependencies: Mapped[list[Dependency]] = relationship(
        "Dependency",
        back_populates="source_version",
        cascade="all, delete-orphan",
        foreign_keys="Dependency.source_version_id",
    )
    resolved_platform_version: Mapped[PlatformVersion | None] = relationship(
        "PlatformVersion",
        foreign_keys=[resolved_platform_version_id],
    )

    # Indexes
    __table_args__ = (
        Index("idx_package_versions_package_id", "package_id"),
        Index(
            "idx_package_versions_ordering",
            "package_id",
            "version_major",
            "version_minor",
            "version_patch",
            "version_labels",
        ),
    )

    __repr__ = generate_repr("id", "package_id", "version")
