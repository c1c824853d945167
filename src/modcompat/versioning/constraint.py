"""Constraint satisfier.

Constraint expressions use Composer range syntax: caret, tilde, comparison
operators (``!=`` and ``<>`` included), wildcards, exact versions and hyphen
ranges. Comma and whitespace both mean AND; ``||`` (or a single ``|``) means OR.

Ranges compile to ``semantic_version`` clauses. As in Composer, a lower bound
without a pre-release label admits pre-releases of that version while an upper
bound excludes them, so ``^2.0`` matches ``2.5.0-beta`` but not ``3.0.0-beta``.

Malformed constraints or candidate versions never escape ``satisfying`` and
``best``: they are logged and treated as "no match" for that pair only.
"""

import re
from collections.abc import Callable, Iterable, Sequence
from functools import lru_cache
from typing import Any, TypeVar

import semantic_version
from semantic_version.base import AllOf, Always, AnyOf, BaseSpec, Clause, Range

from modcompat.core.logging import get_logger
from modcompat.versioning.version import InvalidVersion, Version

logger = get_logger(__name__)

T = TypeVar("T")

_OR_SPLIT = re.compile(r"\s*\|\|?\s*")
_OPERATOR_GAP = re.compile(r"(>=|<=|!=|<>|==|>|<|=|\^|~)\s+")
_V_PREFIX = re.compile(r"(?<![0-9A-Za-z.])[vV](?=\d)")
_STABILITY_FLAG = re.compile(r"@(?:stable|rc|beta|alpha|dev)$", re.IGNORECASE)
_TERM = re.compile(
    r"^(?P<op>\^|~|>=|<=|!=|<>|==|=|>|<)?"
    r"(?P<major>\d+|[*xX])(?:\.(?P<minor>\d+|[*xX]))?(?:\.(?P<patch>\d+|[*xX]))?"
    r"(?:-(?P<label>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_WILDCARDS = frozenset("*xX")

_OPERATORS = {
    "": Range.OP_EQ,
    "=": Range.OP_EQ,
    "==": Range.OP_EQ,
    "!=": Range.OP_NEQ,
    "<>": Range.OP_NEQ,
    ">": Range.OP_GT,
    "<=": Range.OP_LTE,
}


class InvalidConstraint(ValueError):
    """Raised when a constraint expression cannot be parsed."""

    def __init__(self, expression: Any, reason: str = "") -> None:
        self.expression = expression
        message = f"Invalid version constraint: {expression!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


def normalize(expression: str) -> str:
    """Canonical spacing for a constraint expression.

    >>> normalize(">= 1.0, <2.0 | v3.x")
    '>=1.0 <2.0 || 3.x'
    """
    text = _V_PREFIX.sub("", expression.strip())
    text = _OPERATOR_GAP.sub(r"\1", text)
    branches = []
    for branch in _OR_SPLIT.split(text):
        branch = " ".join(branch.replace(",", " ").split())
        if not branch:
            raise InvalidConstraint(expression, "empty alternative")
        branches.append(branch)
    return " || ".join(branches)


def _semver(numbers: Sequence[int], label: str = "") -> semantic_version.Version:
    padded = [*numbers, 0, 0][:3]
    return semantic_version.Version(
        major=padded[0],
        minor=padded[1],
        patch=padded[2],
        prerelease=tuple(label.split(".")) if label else (),
    )


def _range(operator: str, target: semantic_version.Version) -> Range:
    # Plain precedence comparison; pre-release handling lives in the bounds.
    return Range(operator, target, prerelease_policy=Range.PRERELEASE_ALWAYS)


def _lowest(numbers: Sequence[int], label: str = "") -> semantic_version.Version:
    """``numbers`` itself when labelled, otherwise its earliest pre-release."""
    return _semver(numbers, label or "0")


def _next_release(numbers: Sequence[int], position: int) -> semantic_version.Version:
    """Earliest pre-release of ``numbers`` bumped at ``position``."""
    bumped = list(numbers[: position + 1])
    bumped[position] += 1
    return _lowest(bumped)


def _split_term(token: str) -> tuple[str, list[str], str]:
    match = _TERM.match(_STABILITY_FLAG.sub("", token))
    if match is None:
        raise ValueError(f"invalid term {token!r}")
    parts = [part for part in (match["major"], match["minor"], match["patch"]) if part is not None]
    return match["op"] or "", parts, match["label"] or ""


def _numbers(token: str, parts: Sequence[str]) -> list[int]:
    if any(part in _WILDCARDS for part in parts):
        raise ValueError(f"wildcard not allowed in {token!r}")
    return [int(part) for part in parts]


def _wildcard(token: str, operator: str, parts: list[str], label: str) -> Clause:
    first = next(i for i, part in enumerate(parts) if part in _WILDCARDS)
    if operator not in ("", "=", "==") or label:
        raise ValueError(f"wildcard not allowed in {token!r}")
    if any(part not in _WILDCARDS for part in parts[first:]):
        raise ValueError(f"invalid wildcard {token!r}")
    fixed = [int(part) for part in parts[:first]]
    if not fixed:
        return Always()
    return AllOf(
        _range(Range.OP_GTE, _lowest(fixed)),
        _range(Range.OP_LT, _next_release(fixed, len(fixed) - 1)),
    )


def _term(token: str) -> Clause:
    operator, parts, label = _split_term(token)
    if any(part in _WILDCARDS for part in parts):
        return _wildcard(token, operator, parts, label)
    numbers = _numbers(token, parts)

    if operator in ("^", "~"):
        if operator == "~":
            # ~1.2.3 stays within 1.2; ~1 and ~1.2 stay within major 1
            position = 1 if len(numbers) == 3 else 0
        elif numbers[0] != 0 or len(numbers) == 1:
            position = 0
        elif numbers[1] != 0 or len(numbers) == 2:
            position = 1
        else:
            position = 2
        return AllOf(
            _range(Range.OP_GTE, _lowest(numbers, label)),
            _range(Range.OP_LT, _next_release(numbers, position)),
        )
    if operator == ">=":
        return _range(Range.OP_GTE, _lowest(numbers, label))
    if operator == "<":
        return _range(Range.OP_LT, _lowest(numbers, label))
    return _range(_OPERATORS[operator], _semver(numbers, label))


def _hyphen_range(low: str, high: str) -> Clause:
    low_operator, low_parts, low_label = _split_term(low)
    high_operator, high_parts, high_label = _split_term(high)
    if low_operator or high_operator:
        raise ValueError(f"operator not allowed in range {low!r} - {high!r}")
    lower = _numbers(low, low_parts)
    upper = _numbers(high, high_parts)
    if len(upper) == 3:
        ceiling = _range(Range.OP_LTE, _semver(upper, high_label))
    else:
        # A partial upper bound covers everything it names: 1.0 - 2.1 stops below 2.2
        ceiling = _range(Range.OP_LT, _next_release(upper, len(upper) - 1))
    return AllOf(_range(Range.OP_GTE, _lowest(lower, low_label)), ceiling)


def _branch(branch: str) -> Clause:
    tokens = branch.split(" ")
    terms = []
    i = 0
    while i < len(tokens):
        if i + 2 < len(tokens) and tokens[i + 1] == "-":
            terms.append(_hyphen_range(tokens[i], tokens[i + 2]))
            i += 3
        else:
            terms.append(_term(tokens[i]))
            i += 1
    return AllOf(*terms)


class ComposerSpec(BaseSpec):
    """A ``semantic_version`` spec reading Composer range syntax.

    Expects an expression already passed through ``normalize``.
    """

    SYNTAX = "composer"

    @classmethod
    def _parse_to_clause(cls, expression: str) -> Clause:
        return AnyOf(*(_branch(branch) for branch in expression.split(" || ")))


@lru_cache(maxsize=1024)
def _compile(normalized: str) -> ComposerSpec:
    return ComposerSpec(normalized)


class Constraint:
    """A parsed constraint expression."""

    def __init__(self, expression: str, spec: ComposerSpec) -> None:
        self.expression = expression
        self._spec = spec

    @classmethod
    def parse(cls, expression: str | None) -> "Constraint":
        """Parse ``expression``.

        Raises:
            InvalidConstraint: If the expression is empty or malformed
        """
        if not isinstance(expression, str) or not expression.strip():
            raise InvalidConstraint(expression, "empty")
        normalized = normalize(expression)
        try:
            spec = _compile(normalized)
        except ValueError as e:
            raise InvalidConstraint(expression, str(e)) from e
        return cls(expression, spec)

    def allows(self, version: Version) -> bool:
        return bool(self._spec.match(version.to_semver()))

    def __repr__(self) -> str:
        return f"Constraint({self.expression!r})"


def _parsed_candidates(
    candidates: Iterable[T],
    key: Callable[[T], Any] | None,
    log_context: dict[str, Any],
) -> list[tuple[T, Version]]:
    parsed = []
    for candidate in candidates:
        raw = key(candidate) if key is not None else candidate
        if isinstance(raw, Version):
            parsed.append((candidate, raw))
            continue
        try:
            parsed.append((candidate, Version.parse(raw)))
        except InvalidVersion as e:
            logger.warning(
                "Skipping candidate with invalid version",
                version=raw,
                candidate_id=getattr(candidate, "id", None),
                error=str(e),
                **log_context,
            )
    return parsed


def _parse_or_log(expression: str | None, log_context: dict[str, Any]) -> Constraint | None:
    try:
        return Constraint.parse(expression)
    except InvalidConstraint as e:
        logger.warning(
            "Ignoring invalid constraint",
            constraint=expression,
            error=str(e),
            **log_context,
        )
        return None


def satisfying(
    expression: str | None,
    candidates: Iterable[T],
    key: Callable[[T], Any] | None = None,
    **log_context: Any,
) -> list[T]:
    """Return every candidate whose version satisfies ``expression``.

    Args:
        expression: Constraint expression
        candidates: Versions, version strings, or objects resolved through ``key``
        key: Maps a candidate to its version string or Version
        **log_context: Identifying ids added to warnings (dependency_id, ...)

    Returns:
        Matching candidates in input order; empty for an invalid expression.
    """
    constraint = _parse_or_log(expression, log_context)
    if constraint is None:
        return []
    return [
        candidate
        for candidate, version in _parsed_candidates(candidates, key, log_context)
        if constraint.allows(version)
    ]


def best(
    expression: str | None,
    candidates: Iterable[T],
    key: Callable[[T], Any] | None = None,
    **log_context: Any,
) -> T | None:
    """Return the highest-ranked candidate satisfying ``expression``, or None."""
    matches = satisfying(expression, candidates, key, **log_context)
    return highest(matches, key)


def satisfying_all(
    expressions: Sequence[str],
    candidates: Iterable[T],
    key: Callable[[T], Any] | None = None,
    **log_context: Any,
) -> list[T]:
    """Return candidates satisfying every expression.

    An invalid expression matches nothing, so it empties the result.
    """
    constraints = [_parse_or_log(expression, log_context) for expression in expressions]
    if any(constraint is None for constraint in constraints):
        return []
    return [
        candidate
        for candidate, version in _parsed_candidates(candidates, key, log_context)
        if all(constraint.allows(version) for constraint in constraints if constraint)
    ]


def highest(candidates: Iterable[T], key: Callable[[T], Any] | None = None) -> T | None:
    """Return the candidate with the greatest version, or None when empty."""
    parsed = _parsed_candidates(candidates, key, {})
    if not parsed:
        return None
    return max(parsed, key=lambda pair: pair[1].sort_key())[0]
