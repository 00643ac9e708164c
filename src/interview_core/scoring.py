"""Rubric scoring.

A rubric is a mapping of dimension name to a sub-score on a fixed 0..10 scale.
The final score is the weighted mean of the sub-scores rescaled to 0..100:

    final = sum(w_i * s_i) / sum(w_i) * (100 / max_points)

With the default STAR dimensions and equal weights,
{S: 8, T: 7, A: 9, R: 6} scores 75.0.

Out-of-range input is rejected rather than clamped: a clamped score would hide
the caller bug that produced it.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .errors import InvalidInput


STAR_DIMENSIONS = ("S", "T", "A", "R")


@dataclass(frozen=True, slots=True)
class ScoreWeights:
    """Per-dimension weights and the upper bound of each sub-score."""

    weights: Mapping[str, float] = field(
        default_factory=lambda: {name: 1.0 for name in STAR_DIMENSIONS}
    )
    max_points: float = 10.0

    def __post_init__(self) -> None:
        if not self.weights:
            raise ValueError("at least one rubric dimension is required")
        for name, weight in self.weights.items():
            if not math.isfinite(weight) or weight <= 0:
                raise ValueError(f"weight for dimension {name!r} must be a positive number")
        if not math.isfinite(self.max_points) or self.max_points <= 0:
            raise ValueError("max_points must be a positive number")

    @property
    def dimensions(self) -> tuple[str, ...]:
        return tuple(self.weights)

    @classmethod
    def parse(cls, raw: str, *, max_points: float = 10.0) -> ScoreWeights:
        """Parse `"S=1,T=1,A=2,R=1"` into weights."""
        weights: dict[str, float] = {}
        for chunk in raw.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            if "=" not in chunk:
                raise ValueError(f"invalid weight entry {chunk!r}, expected NAME=WEIGHT")
            name, value = (part.strip() for part in chunk.split("=", 1))
            if not name:
                raise ValueError(f"invalid weight entry {chunk!r}, missing dimension name")
            try:
                weights[name] = float(value)
            except ValueError as err:
                raise ValueError(f"weight for dimension {name!r} must be numeric") from err
        return cls(weights=weights, max_points=max_points)


DEFAULT_WEIGHTS = ScoreWeights()


def _sub_score(name: str, value: Any, max_points: float) -> float:
    # bool is an int subclass; True is not a score.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"score for dimension {name!r} must be a number")
    number = float(value)
    if math.isnan(number) or number < 0 or number > max_points:
        raise InvalidInput(
            f"score for dimension {name!r} must be between 0 and {max_points:g}"
        )
    return number


def validate_rubric(
    rubric_inputs: Mapping[str, Any],
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> dict[str, float]:
    """Return the rubric as `{dimension: float}` or raise `InvalidInput`."""
    if not isinstance(rubric_inputs, Mapping):
        raise InvalidInput("rubric inputs must be a mapping of dimension to score")

    missing = [name for name in weights.dimensions if name not in rubric_inputs]
    if missing:
        raise InvalidInput(f"missing rubric dimensions: {', '.join(missing)}")

    unknown = sorted(str(name) for name in rubric_inputs if name not in weights.weights)
    if unknown:
        raise InvalidInput(f"unknown rubric dimensions: {', '.join(unknown)}")

    return {
        name: _sub_score(name, rubric_inputs[name], weights.max_points)
        for name in weights.dimensions
    }


def compute_score(
    rubric_inputs: Mapping[str, Any],
    weights: ScoreWeights = DEFAULT_WEIGHTS,
) -> float:
    """Weighted rubric score in [0, 100], rounded to two decimals."""
    scores = validate_rubric(rubric_inputs, weights)
    total_weight = sum(weights.weights.values())
    weighted = sum(weights.weights[name] * value for name, value in scores.items())
    return round(weighted / total_weight * (100.0 / weights.max_points), 2)
