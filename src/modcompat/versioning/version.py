"""Semantic version model.

Versions order by (major, minor, patch); for an equal numeric core a version
without a pre-release label ranks above any labelled one, and labels compare
lexicographically. Build metadata is carried for display only.
"""

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Any

import semantic_version

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
_SEMVER_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<label>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)


def strip_prefix(raw: str) -> str:
    """Trim whitespace and a single leading ``v``/``V``."""
    text = raw.strip()
    if text[:1] in ("v", "V"):
        return text[1:]
    return text


class InvalidVersion(ValueError):
    """Raised when a version string is not a valid semantic version."""

    def __init__(self, raw: Any) -> None:
        self.raw = raw
        super().__init__(f"Invalid semantic version: {raw!r}")


@total_ordering
@dataclass(frozen=True)
class Version:
    """A parsed semantic version.

    Attributes:
        major: Major component
        minor: Minor component
        patch: Patch component
        label: Pre-release label without the leading dash ("" for stable)
        build: Build metadata without the leading plus; ignored by comparisons
    """

    major: int
    minor: int
    patch: int
    label: str = ""
    build: str = field(default="", compare=False)

    @classmethod
    def parse(cls, raw: str) -> "Version":
        """Parse ``raw`` into a Version.

        A leading ``v``/``V`` is ignored.

        Raises:
            InvalidVersion: If ``raw`` is empty or not a three-part semantic version
        """
        if not isinstance(raw, str):
            raise InvalidVersion(raw)
        match = _SEMVER_RE.match(strip_prefix(raw))
        if match is None:
            raise InvalidVersion(raw)
        return cls(
            major=int(match["major"]),
            minor=int(match["minor"]),
            patch=int(match["patch"]),
            label=match["label"] or "",
            build=match["build"] or "",
        )

    @property
    def is_prerelease(self) -> bool:
        return self.label != ""

    def sort_key(self) -> tuple[int, int, int, int, str]:
        return (self.major, self.minor, self.patch, 1 if self.label == "" else 0, self.label)

    def to_semver(self) -> semantic_version.Version:
        """Convert to a ``semantic_version.Version`` for range matching."""
        return semantic_version.Version(
            major=self.major,
            minor=self.minor,
            patch=self.patch,
            prerelease=tuple(self.label.split(".")) if self.label else (),
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.label:
            text += f"-{self.label}"
        if self.build:
            text += f"+{self.build}"
        return text
