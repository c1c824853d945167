"""Package model for mods and addons."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Enum as SQLEnum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from modcompat.models.base import (
    Base,
    BigIntID,
    IntegerIDMixin,
    TimestampMixin,
    VisibilityMixin,
    generate_repr,
)

if TYPE_CHECKING:
    from modcompat.models.package_version import PackageVersion


class PackageKind(str, Enum):
    """Package classification."""

    MOD = "MOD"
    ADDON = "ADDON"


class Package(Base, IntegerIDMixin, TimestampMixin, VisibilityMixin):
    """A mod or an addon in the catalog.

    Attributes:
        id: Primary key
        kind: MOD or ADDON
        name: Display name
        slug: URL slug
        guid: Optional globally unique identifier declared by the author
        host_mod_id: For addons, the mod they extend; NULL when detached
        disabled: Moderation flag
        published_at: Publish timestamp, None while unpublished
        versions: Related version records
    """

    __tablename__ = "packages"

    kind: Mapped[PackageKind] = mapped_column(
        SQLEnum(PackageKind, native_enum=False, length=16),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    guid: Mapped[str | None] = mapped_column(String(255), nullable=True)
    host_mod_id: Mapped[int | None] = mapped_column(
        BigIntID,
        ForeignKey("packages.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    versions: Mapped[list[PackageVersion]] = relationship(
        "PackageVersion",
        back_populates="package",
        cascade="all, delete-orphan",
    )
    host_mod: Mapped[Package | None] = relationship(
        "Package",
        remote_side="Package.id",
        foreign_keys=[host_mod_id],
    )

    # Indexes
    __table_args__ = (
        Index("idx_packages_slug", "slug"),
        Index("idx_packages_guid", "guid", unique=True),
        Index("idx_packages_host_mod_id", "host_mod_id"),
    )

    @property
    def is_addon(self) -> bool:
        return self.kind == PackageKind.ADDON

    __repr__ = generate_repr("id", "kind", "slug")
