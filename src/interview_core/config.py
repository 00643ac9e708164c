"""Core settings read from environment variables.

Collaborator adapters (LLM clients, S3, MongoDB) read their own variables in
their `from_env` constructors; this class only covers values the lifecycle
itself needs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .models import normalize_skill_level
from .scoring import ScoreWeights


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer") from err


@dataclass(frozen=True, slots=True)
class Settings:
    """Lifecycle defaults.

    Environment variables (used by `from_env`):
    - `INTERVIEW_DEFAULT_LANGUAGE` (default: English)
    - `INTERVIEW_DEFAULT_SKILL_LEVEL` (default: intermediate)
    - `INTERVIEW_SCORE_WEIGHTS` (default: S=1,T=1,A=1,R=1)
    - `INTERVIEW_AUDIO_URL_TTL_SECONDS` (default: 3600)
    - `INTERVIEW_LIST_LIMIT` (default: 50)
    - `INTERVIEW_MAX_AUDIO_BYTES` (default: 52428800, 50 MiB)
    """

    default_language: str = "English"
    default_skill_level: str = "intermediate"
    default_candidate_name: str = "TBD"
    score_weights: ScoreWeights = field(default_factory=ScoreWeights)
    audio_url_ttl_seconds: int = 3600
    list_limit: int = 50
    max_audio_bytes: int = 50 * 1024 * 1024

    def __post_init__(self) -> None:
        if self.audio_url_ttl_seconds < 1:
            raise ValueError("audio_url_ttl_seconds must be >= 1")
        if self.list_limit < 1:
            raise ValueError("list_limit must be >= 1")
        if self.max_audio_bytes < 1:
            raise ValueError("max_audio_bytes must be >= 1")

    @classmethod
    def from_env(cls) -> Settings:
        weights_raw = os.getenv("INTERVIEW_SCORE_WEIGHTS", "").strip()
        try:
            weights = ScoreWeights.parse(weights_raw) if weights_raw else ScoreWeights()
        except ValueError as err:
            raise ValueError(f"INTERVIEW_SCORE_WEIGHTS is invalid: {err}") from err

        return cls(
            default_language=os.getenv("INTERVIEW_DEFAULT_LANGUAGE", "English").strip() or "English",
            default_skill_level=normalize_skill_level(
                os.getenv("INTERVIEW_DEFAULT_SKILL_LEVEL", "intermediate")
            )
            or "intermediate",
            score_weights=weights,
            audio_url_ttl_seconds=_int_from_env("INTERVIEW_AUDIO_URL_TTL_SECONDS", 3600),
            list_limit=_int_from_env("INTERVIEW_LIST_LIMIT", 50),
            max_audio_bytes=_int_from_env("INTERVIEW_MAX_AUDIO_BYTES", 50 * 1024 * 1024),
        )
