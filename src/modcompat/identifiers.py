"""Package identifiers accepted at the API boundary.

A raw identifier is classified once, here, as either a numeric package id or a
GUID/slug string. Downstream code matches on the variant and never re-infers it.
"""

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True)
class ById:
    package_id: int

    def __str__(self) -> str:
        return str(self.package_id)


@dataclass(frozen=True)
class BySlug:
    """Matches a package GUID or, failing that, its slug."""

    slug: str

    def __str__(self) -> str:
        return self.slug


Identifier: TypeAlias = ById | BySlug


@dataclass(frozen=True)
class IdentifierVersion:
    """One ``identifier:version`` pair from an install-set request."""

    identifier: Identifier
    version: str


def parse_identifier(raw: str) -> Identifier:
    """Classify ``raw``: a positive integer is an id, anything else a GUID/slug.

    Raises:
        ValueError: If ``raw`` is blank
    """
    text = raw.strip()
    if not text:
        raise ValueError("Identifier must not be empty")
    if text.isascii() and text.isdigit() and int(text) > 0:
        return ById(int(text))
    return BySlug(text)


def parse_identifier_pairs(raw: str) -> list[IdentifierVersion]:
    """Parse a comma-separated ``identifier:version`` list.

    Blank entries and malformed pairs are dropped; duplicates keep their first
    position.

    >>> parse_identifier_pairs("5:1.2.0, com.example.mod:2.0.5,5:1.2.0")
    [IdentifierVersion(identifier=ById(package_id=5), version='1.2.0'), IdentifierVersion(identifier=BySlug(slug='com.example.mod'), version='2.0.5')]
    """
    pairs: list[IdentifierVersion] = []
    seen: set[IdentifierVersion] = set()
    for chunk in raw.split(","):
        parts = chunk.strip().split(":")
        if len(parts) != 2:
            continue
        identifier, version = parts[0].strip(), parts[1].strip()
        if not identifier or not version:
            continue
        pair = IdentifierVersion(parse_identifier(identifier), version)
        if pair not in seen:
            seen.add(pair)
            pairs.append(pair)
    return pairs
