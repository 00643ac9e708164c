"""Data contracts for interview sessions.

Two families of models live here:

1. Request contracts (`StrictModel` subclasses): inbound payloads. Unknown keys
   are rejected so a client typo fails loudly instead of being ignored.
2. The stored aggregate (`InterviewSession`): the single session shape shared
   by every variant of the interview flow. Optional fields cover the variants
   (scheduled recruiter interviews, quick Q&A sessions) instead of separate
   entities.

Write rules (who may change which field, and when) are not enforced here; they
belong to `SessionLifecycleManager`. These models only describe shape.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StrictModel(BaseModel):
    """Shared strict behavior for inbound payloads.

    `extra="forbid"` rejects unknown keys; `str_strip_whitespace=True` trims
    surrounding spaces so "  backend " and "backend" are the same role.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class SessionStatus(str, Enum):
    """Lifecycle states.

    `scheduled` is optional (sessions may start directly `active`);
    `completed` and `cancelled` are terminal.
    """

    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})


class SkillLevel(str, Enum):
    """Known seniority bands. Free-form labels ("Senior", "L5") are also accepted."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


def normalize_skill_level(value: str) -> str:
    """Map known bands to their canonical lowercase value, keep other labels as given."""
    label = value.strip()
    lowered = label.lower()
    for level in SkillLevel:
        if lowered == level.value:
            return level.value
    return label


class CallerRole(str, Enum):
    CANDIDATE = "candidate"
    RECRUITER = "recruiter"
    ADMIN = "admin"


FEEDBACK_ROLES = frozenset({CallerRole.RECRUITER.value, CallerRole.ADMIN.value})


class Caller(StrictModel):
    """Identity of an already-authenticated caller.

    `role` is kept as reported by the identity provider (lowercased). Roles
    outside `CallerRole` are valid identities; they just hold no permissions.
    """

    id: str = Field(min_length=1)
    role: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if isinstance(value, CallerRole):
            return value.value
        if isinstance(value, str):
            return value.strip().lower()
        return value


# ---------------------------------------------------------------------
# Stored aggregate
# ---------------------------------------------------------------------


class InterviewSession(BaseModel):
    """One interview from creation to a terminal state.

    Field notes:
    - `questions` is populated once at creation and never rewritten.
    - `transcript` only grows, and only while `active`.
    - `audio_url`/`audio_key` and `final_score`/`feedback` are write-once.
    - `final_score` is always derived from `scores`; it is never accepted
      from a caller directly.
    - `generation_warning` is set when creation proceeded without usable
      generated questions.
    """

    # Persisted documents may carry store-specific keys; ignore them on load.
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    id: str = Field(min_length=1)
    candidate_name: str
    role: str = Field(min_length=1)
    language: str
    skill_level: str
    status: SessionStatus
    questions: list[str] = Field(default_factory=list)
    rubric_guidance: str = ""
    generation_warning: str | None = None
    transcript: list[str] = Field(default_factory=list)
    audio_url: str | None = None
    audio_key: str | None = None
    scores: dict[str, float] | None = None
    final_score: float | None = Field(default=None, ge=0, le=100)
    feedback: str | None = None
    owner_id: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        """Plain dict suitable for a document store."""
        return self.model_dump()

    @property
    def is_terminal(self) -> bool:
        return SessionStatus(self.status) in TERMINAL_STATUSES


# Fields a patch may never touch.
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})
PATCHABLE_FIELDS = frozenset(InterviewSession.model_fields) - IMMUTABLE_FIELDS


# ---------------------------------------------------------------------
# Request contracts
# ---------------------------------------------------------------------


class CreateSessionRequest(StrictModel):
    """Inputs for creating (or scheduling) a session."""

    candidate_name: str | None = None
    role: str = Field(min_length=1)
    language: str | None = None
    skill_level: str | None = None

    @field_validator("skill_level")
    @classmethod
    def _normalize_level(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_skill_level(value)


class TranscriptTurnRequest(StrictModel):
    turn: str = Field(min_length=1)


class FeedbackRequest(StrictModel):
    """Rubric sub-scores plus evaluator commentary.

    `scores` is validated by the scoring engine, not here, so range errors
    surface as `InvalidInput` with one consistent message.
    """

    scores: dict[str, Any]
    feedback: str = Field(min_length=1)
