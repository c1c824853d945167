"""Test the constraint satisfier."""

from dataclasses import dataclass

import pytest

from modcompat.versioning import (
    Constraint,
    InvalidConstraint,
    Version,
    best,
    highest,
    satisfying,
    satisfying_all,
)
from modcompat.versioning.constraint import normalize


@dataclass
class Candidate:
    id: int
    version: str


def by_version(candidate: Candidate) -> str:
    return candidate.version


class TestNormalize:
    """Test normalize() rewriting into the range grammar."""

    def test_commas_mean_and(self) -> None:
        assert normalize(">=1.0.0, <2.0.0") == ">=1.0.0 <2.0.0"

    def test_single_and_double_pipe_mean_or(self) -> None:
        assert normalize("^1.0 | ^2.0") == "^1.0 || ^2.0"
        assert normalize("^1.0||^2.0") == "^1.0 || ^2.0"

    def test_strips_v_prefix_and_operator_gaps(self) -> None:
        assert normalize(">= v1.0, < v2") == ">=1.0 <2"

    def test_empty_alternative_rejected(self) -> None:
        with pytest.raises(InvalidConstraint):
            normalize("^1.0 ||")


class TestConstraint:
    """Test Constraint.parse() and allows()."""

    @pytest.mark.parametrize(
        ("expression", "version", "expected"),
        [
            ("^2.0", "2.5.0", True),
            ("^2.0", "3.0.0", False),
            ("^0.2.3", "0.2.9", True),
            ("^0.2.3", "0.3.0", False),
            ("~1.2.0", "1.2.9", True),
            ("~1.2.0", "1.3.0", False),
            (">=1.0.0 <2.0.0", "1.5.0", True),
            (">=1.0.0 <2.0.0", "2.0.0", False),
            (">=1.0.0, <2.0.0", "1.0.0", True),
            ("1.0.0 - 2.0.0", "2.0.0", True),
            ("1.x", "1.9.0", True),
            ("*", "7.0.0", True),
            ("=1.2.3", "1.2.3", True),
            ("1.2.3", "1.2.4", False),
            ("^1.0 || ^3.0", "3.1.0", True),
            ("^1.0 | ^3.0", "2.0.0", False),
            ("v1.0.0", "1.0.0", True),
            ("1.2", "1.2.0", True),
            ("1.2", "1.2.5", False),
            ("1.2.*", "1.2.7", True),
            ("1.2.*", "1.3.0", False),
            ("1.0 - 2.1", "2.1.9", True),
            ("1.0 - 2.1", "2.2.0", False),
            (">=1.0@stable", "1.0.0", True),
        ],
    )
    def test_allows(self, expression: str, version: str, expected: bool) -> None:
        assert Constraint.parse(expression).allows(Version.parse(version)) is expected

    @pytest.mark.parametrize(
        ("expression", "version", "expected"),
        [
            ("~1", "1.9.0", True),
            ("~1", "2.0.0", False),
            ("~1.2", "1.2.0", True),
            ("~1.2", "1.5.0", True),
            ("~1.2", "2.0.0", False),
            ("~1.2", "1.1.9", False),
            ("~1.2.3", "1.2.9", True),
            ("~1.2.3", "1.3.0", False),
        ],
    )
    def test_tilde_locks_last_given_part_but_one(
        self, expression: str, version: str, expected: bool
    ) -> None:
        """~1.2 means >=1.2.0 <2.0.0; ~1.2.3 means >=1.2.3 <1.3.0."""
        assert Constraint.parse(expression).allows(Version.parse(version)) is expected

    @pytest.mark.parametrize(
        ("expression", "version", "expected"),
        [
            ("^0", "0.9.0", True),
            ("^0", "1.0.0", False),
            ("^0.0", "0.0.9", True),
            ("^0.0", "0.1.0", False),
            ("^0.0.3", "0.0.3", True),
            ("^0.0.3", "0.0.4", False),
        ],
    )
    def test_caret_on_zero_versions(self, expression: str, version: str, expected: bool) -> None:
        assert Constraint.parse(expression).allows(Version.parse(version)) is expected

    @pytest.mark.parametrize(
        ("expression", "version", "expected"),
        [
            (">=1.0 !=1.1.0", "1.1.0", False),
            (">=1.0 !=1.1.0", "1.2.0", True),
            ("!= 1.1.0, <2.0", "1.0.0", True),
            ("<>1.1.0", "1.1.0", False),
            ("!=1.1.0", "1.1.0-beta", True),
        ],
    )
    def test_not_equal(self, expression: str, version: str, expected: bool) -> None:
        assert Constraint.parse(expression).allows(Version.parse(version)) is expected

    @pytest.mark.parametrize(
        ("expression", "version", "expected"),
        [
            ("^1.0.0", "1.1.0-beta", True),
            ("^1.0.0", "1.0.0-rc.1", True),
            ("^1.0.0", "2.0.0-beta", False),
            ("<2.0.0", "2.0.0-beta", False),
            (">=1.1.0-alpha", "1.1.0-beta", True),
            (">1.0.0", "1.0.0-beta", False),
            ("1.0.0-beta", "1.0.0-beta", True),
        ],
    )
    def test_prereleases(self, expression: str, version: str, expected: bool) -> None:
        """Lower bounds admit pre-releases of the bound itself; upper bounds exclude them."""
        assert Constraint.parse(expression).allows(Version.parse(version)) is expected

    @pytest.mark.parametrize(
        "expression",
        ["", "   ", None, ">>1.0", "not a range", "^", ">=1.*", "1.*.3", "^1.0 - 2.0", "1.0.0-01"],
    )
    def test_parse_rejects_malformed(self, expression: str | None) -> None:
        with pytest.raises(InvalidConstraint):
            Constraint.parse(expression)


class TestSatisfying:
    """Test satisfying() and best()."""

    def test_returns_all_matches_in_input_order(self) -> None:
        candidates = ["2.0.0", "3.0.0", "2.5.0"]
        assert satisfying("^2.0", candidates) == ["2.0.0", "2.5.0"]

    def test_best_picks_highest_match(self) -> None:
        """Scenario: ^2.0 over 2.0.0, 2.5.0, 3.0.0 picks 2.5.0."""
        candidates = [Candidate(1, "2.0.0"), Candidate(2, "2.5.0"), Candidate(3, "3.0.0")]
        assert best("^2.0", candidates, key=by_version) == Candidate(2, "2.5.0")

    def test_best_none_when_nothing_matches(self) -> None:
        assert best("^9.0", ["1.0.0", "2.0.0"]) is None
        assert best("^1.0", []) is None

    def test_excluded_version_skipped(self) -> None:
        assert satisfying(">=1.0 !=1.1.0", ["1.0.0", "1.1.0", "1.2.0"]) == ["1.0.0", "1.2.0"]

    def test_tilde_with_two_parts_spans_minor_releases(self) -> None:
        assert satisfying("~1.2", ["1.2.0", "1.5.0", "2.0.0"]) == ["1.2.0", "1.5.0"]

    def test_best_may_pick_prerelease_inside_range(self) -> None:
        assert best("^2.0", ["2.0.0", "2.5.0-beta"]) == "2.5.0-beta"

    def test_best_prefers_stable_over_prerelease(self) -> None:
        assert best(">=2.0.0-alpha", ["2.0.0-rc.1", "2.0.0"]) == "2.0.0"

    def test_invalid_expression_matches_nothing(self) -> None:
        """A malformed constraint is logged and treated as no match."""
        assert satisfying(">>1.0", ["1.0.0"], dependency_id=7) == []
        assert best("garbage", ["1.0.0"]) is None

    def test_invalid_candidate_skipped(self) -> None:
        candidates = [Candidate(1, "1.0"), Candidate(2, "1.2.0"), Candidate(3, "banana")]
        assert satisfying("^1.0", candidates, key=by_version) == [Candidate(2, "1.2.0")]

    def test_accepts_parsed_versions(self) -> None:
        assert satisfying("^1.0", [Version(1, 4, 0), Version(2, 0, 0)]) == [Version(1, 4, 0)]

    def test_best_agrees_with_satisfying(self) -> None:
        candidates = ["1.0.0", "1.2.0", "1.2.0-rc", "1.10.0", "2.0.0", "0.9.0"]
        for expression in ["^1.0", "~1.2", ">=1.0.0 <1.5.0", ">=3.0.0", "*"]:
            matches = satisfying(expression, candidates)
            expected = max(matches, key=lambda raw: Version.parse(raw)) if matches else None
            assert best(expression, candidates) == expected


class TestSatisfyingAll:
    """Test satisfying_all()."""

    def test_intersection(self) -> None:
        candidates = ["1.0.0", "1.5.0", "2.0.0"]
        assert satisfying_all(["^1.0", ">=1.2.0"], candidates) == ["1.5.0"]

    def test_invalid_expression_empties_result(self) -> None:
        assert satisfying_all(["^1.0", "???"], ["1.0.0"]) == []

    def test_no_expressions_keeps_every_valid_candidate(self) -> None:
        assert satisfying_all([], ["1.0.0", "bad"]) == ["1.0.0"]


class TestHighest:
    """Test highest()."""

    def test_highest(self) -> None:
        assert highest(["1.0.0", "1.10.0", "1.9.0"]) == "1.10.0"

    def test_empty(self) -> None:
        assert highest([]) is None

    def test_skips_invalid(self) -> None:
        assert highest(["x", "0.1.0"]) == "0.1.0"
