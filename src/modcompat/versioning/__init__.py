"""Semantic versions and constraint matching."""

from modcompat.versioning.constraint import (
    Constraint,
    InvalidConstraint,
    best,
    highest,
    satisfying,
    satisfying_all,
)
from modcompat.versioning.version import InvalidVersion, Version

__all__ = [
    "Constraint",
    "InvalidConstraint",
    "InvalidVersion",
    "Version",
    "best",
    "highest",
    "satisfying",
    "satisfying_all",
]
