from __future__ import annotations

import math

import pytest

from interview_core.errors import InvalidInput
from interview_core.scoring import ScoreWeights, compute_score, validate_rubric


def test_equal_weights_star_rubric_scores_75() -> None:
    assert compute_score({"S": 8, "T": 7, "A": 9, "R": 6}) == 75.0


def test_score_bounds() -> None:
    assert compute_score({"S": 0, "T": 0, "A": 0, "R": 0}) == 0.0
    assert compute_score({"S": 10, "T": 10, "A": 10, "R": 10}) == 100.0


def test_custom_weights_change_the_aggregate() -> None:
    weights = ScoreWeights.parse("S=1,T=1,A=2,R=1")
    # (8 + 7 + 2*9 + 6) / 5 * 10
    assert compute_score({"S": 8, "T": 7, "A": 9, "R": 6}, weights) == pytest.approx(78.0)


def test_compute_score_is_deterministic() -> None:
    rubric = {"S": 6.5, "T": 7.25, "A": 3, "R": 9}
    assert compute_score(rubric) == compute_score(dict(rubric))


def test_missing_dimension_is_rejected() -> None:
    with pytest.raises(InvalidInput, match="missing rubric dimensions: R"):
        compute_score({"S": 8, "T": 7, "A": 9})


def test_unknown_dimension_is_rejected() -> None:
    with pytest.raises(InvalidInput, match="unknown rubric dimensions"):
        compute_score({"S": 8, "T": 7, "A": 9, "R": 6, "X": 1})


@pytest.mark.parametrize("bad_value", [11, -0.5, math.nan, True, "8", None])
def test_out_of_range_or_non_numeric_is_rejected_not_clamped(bad_value: object) -> None:
    with pytest.raises(InvalidInput):
        compute_score({"S": bad_value, "T": 7, "A": 9, "R": 6})


def test_validate_rubric_returns_floats_in_dimension_order() -> None:
    assert validate_rubric({"R": 6, "A": 9, "T": 7, "S": 8}) == {
        "S": 8.0,
        "T": 7.0,
        "A": 9.0,
        "R": 6.0,
    }


def test_rubric_must_be_a_mapping() -> None:
    with pytest.raises(InvalidInput):
        compute_score([8, 7, 9, 6])  # type: ignore[arg-type]


@pytest.mark.parametrize("raw", ["S=0,T=1", "S=abc", "S", "=2", "S=-1"])
def test_weight_parsing_rejects_bad_entries(raw: str) -> None:
    with pytest.raises(ValueError):
        ScoreWeights.parse(raw)


def test_weights_require_at_least_one_dimension() -> None:
    with pytest.raises(ValueError):
        ScoreWeights(weights={})
