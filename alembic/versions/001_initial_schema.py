"""Initial catalog and resolution schema

Revision ID: 001
Revises:
Create Date: 2025-06-01 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), sa.Identity(), nullable=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            onupdate=sa.func.now(),
        ),
    ]


def _version_number() -> list[sa.Column]:
    return [
        sa.Column("version", sa.String(64), nullable=False),
        sa.Column("version_major", sa.Integer(), nullable=True),
        sa.Column("version_minor", sa.Integer(), nullable=True),
        sa.Column("version_patch", sa.Integer(), nullable=True),
        sa.Column("version_labels", sa.String(64), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "platform_versions",
        _id(),
        *_version_number(),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_platform_versions_version", "platform_versions", ["version"], unique=True
    )

    op.create_table(
        "packages",
        _id(),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("guid", sa.String(255), nullable=True),
        sa.Column("host_mod_id", sa.BigInteger(), nullable=True),
        sa.Column("disabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["host_mod_id"], ["packages.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_packages_slug", "packages", ["slug"])
    op.create_index("idx_packages_guid", "packages", ["guid"], unique=True)
    op.create_index("idx_packages_host_mod_id", "packages", ["host_mod_id"])

    op.create_table(
        "package_versions",
        _id(),
        sa.Column("package_id", sa.BigInteger(), nullable=False),
        *_version_number(),
        sa.Column("platform_constraint", sa.String(255), nullable=True),
        sa.Column("resolved_platform_version_id", sa.BigInteger(), nullable=True),
        sa.Column("mod_version_constraint", sa.String(255), nullable=True),
        sa.Column("disabled", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["package_id"], ["packages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["resolved_platform_version_id"], ["platform_versions.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_package_versions_package_id", "package_versions", ["package_id"])
    op.create_index(
        "idx_package_versions_ordering",
        "package_versions",
        ["package_id", "version_major", "version_minor", "version_patch", "version_labels"],
    )

    op.create_table(
        "dependencies",
        _id(),
        sa.Column("source_version_id", sa.BigInteger(), nullable=False),
        sa.Column("target_package_id", sa.BigInteger(), nullable=False),
        sa.Column("constraint", sa.String(255), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["source_version_id"], ["package_versions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["target_package_id"], ["packages.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_dependencies_source_version_id", "dependencies", ["source_version_id"]
    )
    op.create_index(
        "idx_dependencies_target_package_id", "dependencies", ["target_package_id"]
    )

    op.create_table(
        "resolved_dependencies",
        _id(),
        sa.Column("dependency_id", sa.BigInteger(), nullable=False),
        sa.Column("source_version_id", sa.BigInteger(), nullable=False),
        sa.Column("resolved_version_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["dependency_id"], ["dependencies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["source_version_id"], ["package_versions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["resolved_version_id"], ["package_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_resolved_dependencies_dependency_id",
        "resolved_dependencies",
        ["dependency_id"],
        unique=True,
    )
    op.create_index(
        "idx_resolved_dependencies_source_version_id",
        "resolved_dependencies",
        ["source_version_id"],
    )
    op.create_index(
        "idx_resolved_dependencies_resolved_version_id",
        "resolved_dependencies",
        ["resolved_version_id"],
    )

    op.create_table(
        "addon_compatibilities",
        _id(),
        sa.Column("addon_version_id", sa.BigInteger(), nullable=False),
        sa.Column("mod_version_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["addon_version_id"], ["package_versions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["mod_version_id"], ["package_versions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_addon_compatibilities_pair",
        "addon_compatibilities",
        ["addon_version_id", "mod_version_id"],
        unique=True,
    )
    op.create_index(
        "idx_addon_compatibilities_mod_version_id",
        "addon_compatibilities",
        ["mod_version_id"],
    )

    op.create_table(
        "pin_platform_links",
        _id(),
        sa.Column("mod_version_id", sa.BigInteger(), nullable=False),
        sa.Column("platform_version_id", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["mod_version_id"], ["package_versions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["platform_version_id"], ["platform_versions.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_pin_platform_links_pair",
        "pin_platform_links",
        ["mod_version_id", "platform_version_id"],
        unique=True,
    )
    op.create_index(
        "idx_pin_platform_links_platform_version_id",
        "pin_platform_links",
        ["platform_version_id"],
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_pin_platform_links_platform_version_id", table_name="pin_platform_links")
    op.drop_index("idx_pin_platform_links_pair", table_name="pin_platform_links")
    op.drop_index(
        "idx_addon_compatibilities_mod_version_id", table_name="addon_compatibilities"
    )
    op.drop_index("idx_addon_compatibilities_pair", table_name="addon_compatibilities")
    op.drop_index(
        "idx_resolved_dependencies_resolved_version_id", table_name="resolved_dependencies"
    )
    op.drop_index(
        "idx_resolved_dependencies_source_version_id", table_name="resolved_dependencies"
    )
    op.drop_index("idx_resolved_dependencies_dependency_id", table_name="resolved_dependencies")
    op.drop_index("idx_dependencies_target_package_id", table_name="dependencies")
    op.drop_index("idx_dependencies_source_version_id", table_name="dependencies")
    op.drop_index("idx_package_versions_ordering", table_name="package_versions")
    op.drop_index("idx_package_versions_package_id", table_name="package_versions")
    op.drop_index("idx_packages_host_mod_id", table_name="packages")
    op.drop_index("idx_packages_guid", table_name="packages")
    op.drop_index("idx_packages_slug", table_name="packages")
    op.drop_index("idx_platform_versions_version", table_name="platform_versions")

    op.drop_table("pin_platform_links")
    op.drop_table("addon_compatibilities")
    op.drop_table("resolved_dependencies")
    op.drop_table("dependencies")
    op.drop_table("package_versions")
    op.drop_table("packages")
    op.drop_table("platform_versions")
