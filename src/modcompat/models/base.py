"""Base model classes and mixins for SQLAlchemy models."""

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, ColumnElement, DateTime, Integer, String, and_, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, validates

from modcompat.core.clock import ensure_utc
from modcompat.versioning.version import InvalidVersion, Version, strip_prefix

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntID = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was created."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        """Timestamp when the record was last updated."""
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            server_default=func.now(),
            onupdate=func.now(),
        )


class IntegerIDMixin:
    """Mixin that adds an autoincrementing integer primary key."""

    @declared_attr
    def id(cls) -> Mapped[int]:
        """Primary key."""
        return mapped_column(BigIntID, primary_key=True, autoincrement=True)


class PublishableMixin:
    """Mixin for rows gated by a nullable, possibly future publish timestamp."""

    @declared_attr
    def published_at(cls) -> Mapped[datetime | None]:
        """When the row becomes public. None means unpublished."""
        return mapped_column(DateTime(timezone=True), nullable=True, default=None)

    @classmethod
    def published_clause(cls, as_of: datetime) -> ColumnElement[bool]:
        """SQL condition: published_at is set and not after ``as_of``."""
        column = getattr(cls, "published_at")
        return and_(column.is_not(None), column <= ensure_utc(as_of))


class VisibilityMixin(PublishableMixin):
    """Publishable rows that can also be disabled by moderation."""

    @declared_attr
    def disabled(cls) -> Mapped[bool]:
        return mapped_column(Boolean, nullable=False, default=False, server_default=false())

    @classmethod
    def visible_clause(cls, as_of: datetime) -> ColumnElement[bool]:
        """SQL condition for a row that is enabled and published as of ``as_of``."""
        return and_(getattr(cls, "disabled").is_(False), cls.published_clause(as_of))


class VersionNumberMixin:
    """Mixin storing a version string plus its parsed components.

    The parsed columns are refreshed whenever ``version`` is assigned. An
    unparseable version leaves them NULL; such rows are skipped by the
    constraint satisfier.
    """

    @declared_attr
    def version(cls) -> Mapped[str]:
        return mapped_column(String(64), nullable=False)

    @declared_attr
    def version_major(cls) -> Mapped[int | None]:
        return mapped_column(Integer, nullable=True)

    @declared_attr
    def version_minor(cls) -> Mapped[int | None]:
        return mapped_column(Integer, nullable=True)

    @declared_attr
    def version_patch(cls) -> Mapped[int | None]:
        return mapped_column(Integer, nullable=True)

    @declared_attr
    def version_labels(cls) -> Mapped[str | None]:
        return mapped_column(String(64), nullable=True)

    @validates("version")
    def _parse_version_parts(self, key: str, value: str) -> str:
        value = strip_prefix(value)
        try:
            parsed = Version.parse(value)
        except InvalidVersion:
            self.version_major = None
            self.version_minor = None
            self.version_patch = None
            self.version_labels = None
            return value
        self.version_major = parsed.major
        self.version_minor = parsed.minor
        self.version_patch = parsed.patch
        self.version_labels = parsed.label
        return value

    @property
    def parsed_version(self) -> Version | None:
        try:
            return Version.parse(getattr(self, "version"))
        except InvalidVersion:
            return None

    def version_sort_key(self) -> tuple[int, int, int, int, str]:
        """Ordering key; unparseable versions sort below every valid one."""
        parsed = self.parsed_version
        if parsed is None:
            return (-1, -1, -1, -1, "")
        return parsed.sort_key()


def generate_repr(*attrs: str) -> Any:
    """Generate a __repr__ method for model classes.

    Args:
        *attrs: Attribute names to include in the repr string.

    Returns:
        A __repr__ method that displays the specified attributes.

    Example:
        __repr__ = generate_repr("id", "package_id", "version")
    """

    def __repr__(self: Any) -> str:
        class_name = self.__class__.__name__
        attr_strs = [f"{attr}={getattr(self, attr)!r}" for attr in attrs]
        return f"{class_name}({', '.join(attr_strs)})"

    return __repr__
