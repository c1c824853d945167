"""Addon version to host mod version compatibility set."""

from sqlalchemy import ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from modcompat.models.base import Base, BigIntID, IntegerIDMixin, TimestampMixin, generate_repr


class AddonCompatibility(Base, IntegerIDMixin, TimestampMixin):
    """One host mod version an addon version is compatible with."""

    __tablename__ = "addon_compatibilities"

    addon_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )
    mod_version_id: Mapped[int] = mapped_column(
        BigIntID,
        ForeignKey("package_versions.id", ondelete="CASCADE"),
        nullable=False,
    )

    __table_args__ = (
        Index(
            "idx_addon_compatibilities_pair",
            "addon_version_id",
            "mod_version_id",
            unique=True,
        ),
        Index("idx_addon_compatibilities_mod_version_id", "mod_version_id"),
    )

    __repr__ = generate_repr("addon_version_id", "mod_version_id")
