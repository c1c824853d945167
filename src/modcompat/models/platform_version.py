"""Platform (engine) versions and the pins that hold mod versions back."""

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from modcompat.models.base import (
    Base,
    BigIntID,
    IntegerIDMixin,
    PublishableMixin,
    TimestampMixin,
    VersionNumberMixin,
    generate_repr,
)


class PlatformVersion(Base, IntegerIDMixin, TimestampMixin, PublishableMixin, VersionNumberMixin):
    """A release of the underlying platform.

    ``published_at`` may lie in the future for a scheduled release.
    """

    __tablename__ = "platform_versions"

    __table_args__ = (
        Index("idx_platform_versions_version", "version", unique=True),
    )

    __repr__ = generate_repr("id", "version", "published_at")


class PinPlatformLink(Base, IntegerIDMixin, TimestampMixin):
    """Holds a mod version's auto-publish until a platform version publishes."""

    __tablename__ = "pin_platform_links"

    mod_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )
    platform_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("platform_versions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        Index(
            "idx_pin_platform_links_pair",
            "mod_version_id",
            "platform_version_id",
            unique=True,
        ),
        Index("idx_pin_platform_links_platform_version_id", "platform_version_id"),
    )

    __repr__ = generate_repr("mod_version_id", "platform_version_id")
