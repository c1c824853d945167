"""Declared dependency edges and their cached resolutions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from modcompat.models.base import Base, BigIntID, IntegerIDMixin, TimestampMixin, generate_repr

if TYPE_CHECKING:
    from modcompat.models.package import Package
    from modcompat.models.package_version import PackageVersion


class Dependency(Base, IntegerIDMixin, TimestampMixin):
    """A constraint a source version declares against a target package.

    Attributes:
        id: Primary key
        source_version_id: Version declaring the dependency
        target_package_id: Package the constraint applies to
        constraint: Version range expression
    """

    __tablename__ = "dependencies"

    source_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_package_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("packages.id", ondelete="CASCADE"),
        nullable=False,
    )
    constraint: Mapped[str] = mapped_column(String(255), nullable=False)

    # Relationships
    source_version: Mapped[PackageVersion] = relationship(
        "PackageVersion",
        back_populates="dependencies",
        foreign_keys=[source_version_id],
    )
    target_package: Mapped[Package] = relationship("Package")

    # Indexes
    __table_args__ = (
        Index("idx_dependencies_source_version_id", "source_version_id"),
        Index("idx_dependencies_target_package_id", "target_package_id"),
    )

    __repr__ = generate_repr("id", "source_version_id", "target_package_id", "constraint")


class ResolvedDependency(Base, IntegerIDMixin, TimestampMixin):
    """Cached best match for one Dependency.

    At most one row exists per dependency; no row means nothing matches.
    """

    __tablename__ = "resolved_dependencies"

    dependency_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("dependencies.id", ondelete="CASCADE"),
        nullable=False,
    )
    source_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )
    resolved_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_resolved_dependencies_dependency_id", "dependency_id", unique=True),
        Index("idx_resolved_dependencies_source_version_id", "source_version_id"),
        Index("idx_resolved_dependencies_resolved_version_id", "resolved_version_id"),
    )

    __repr__ = generate_repr("dependency_id", "source_version_id", "resolved_version_id")
