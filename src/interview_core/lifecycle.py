"""
Interview session lifecycle.

State machine:

    scheduled --start--> active --submit_feedback / end--> completed
        |                  |
        +----cancel--------+-----------cancel-----------> cancelled

`completed` and `cancelled` are terminal.

Write discipline:
- `SessionLifecycleManager` is the only writer of sessions. Every transition
  reads the session, checks the transition is allowed, performs any upstream
  calls (model, object storage, scoring), and only then issues exactly one
  `SessionPatch` guarded by the status it observed.
- If a concurrent writer got there first, the guarded patch matches nothing
  and the caller receives `StateConflict`. Conflicts are never retried here;
  only the caller knows whether its write still makes sense.
- A failed upstream call leaves the stored session untouched, since the patch
  is never issued.

Question generation is the one upstream failure that is absorbed: a session is
still created, with no questions and a `generation_warning`, because an
interviewer can run the session without pre-generated questions.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any
from uuid import uuid4

from .artifacts import ArtifactCoordinator, S3ObjectStorage
from .config import Settings
from .errors import (
    AlreadySet,
    Forbidden,
    InvalidState,
    NotFound,
    UpstreamUnavailable,
    ValidationError,
)
from .generation import GeneratedQuestionSet, QuestionGenerator
from .llm_client import client_from_env
from .models import (
    FEEDBACK_ROLES,
    Caller,
    InterviewSession,
    SessionStatus,
    normalize_skill_level,
)
from .mongo_store import MongoDocumentStore
from .scoring import compute_score, validate_rubric
from .store import InMemoryDocumentStore, SessionPatch, SessionStoreGateway, utcnow


GENERATION_UNAVAILABLE_WARNING = (
    "question generation was unavailable; session created without generated questions"
)
GENERATION_EMPTY_WARNING = "the model returned no usable questions"

INITIAL_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.ACTIVE})
CANCELLABLE_STATUSES = frozenset({SessionStatus.SCHEDULED, SessionStatus.ACTIVE})


def _new_session_id() -> str:
    return uuid4().hex


class SessionLifecycleManager:
    """Orchestrates every session transition."""

    def __init__(
        self,
        *,
        gateway: SessionStoreGateway,
        generator: QuestionGenerator,
        artifacts: ArtifactCoordinator,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = _new_session_id,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.generator = generator
        self.artifacts = artifacts
        self.settings = settings or Settings()
        self.clock = clock
        self.id_factory = id_factory
        self.logger = logger or logging.getLogger("interview_core.lifecycle")

    @classmethod
    def from_env(cls) -> SessionLifecycleManager:
        """Wire real collaborators from environment variables.

        MongoDB is used when `MONGODB_URI` is set, otherwise sessions live in
        process memory. S3 and the LLM provider are always required.
        """
        settings = Settings.from_env()

        if os.getenv("MONGODB_URI"):
            store = MongoDocumentStore.from_env()
        else:
            store = InMemoryDocumentStore()

        return cls(
            gateway=SessionStoreGateway(store),
            generator=QuestionGenerator(llm_client=client_from_env()),
            artifacts=ArtifactCoordinator(
                storage=S3ObjectStorage.from_env(),
                key_prefix=os.getenv("AWS_KEY_PREFIX", "interviews"),
                default_ttl_seconds=settings.audio_url_ttl_seconds,
            ),
            settings=settings,
        )

    # -------------------------
    # Creation
    # -------------------------

    def create(
        self,
        *,
        role: str | None,
        candidate_name: str | None = None,
        language: str | None = None,
        skill_level: str | None = None,
        caller: Caller | None = None,
        initial_status: SessionStatus = SessionStatus.ACTIVE,
    ) -> InterviewSession:
        """Generate questions and persist a new session."""
        if role is None or not role.strip():
            raise ValidationError("role is required")
        initial_status = SessionStatus(initial_status)
        if initial_status not in INITIAL_STATUSES:
            raise ValidationError("sessions can only start as scheduled or active")

        role = role.strip()
        language = (language or "").strip() or self.settings.default_language
        skill_level = (
            normalize_skill_level(skill_level or "") or self.settings.default_skill_level
        )
        candidate_name = (candidate_name or "").strip() or self.settings.default_candidate_name

        generated, warning = self._generate(role, skill_level, language)

        now = self.clock()
        session = InterviewSession(
            id=self.id_factory(),
            candidate_name=candidate_name,
            role=role,
            language=language,
            skill_level=skill_level,
            status=initial_status,
            questions=generated.questions,
            rubric_guidance=generated.rubric_guidance,
            generation_warning=warning,
            owner_id=caller.id if caller is not None else None,
            created_at=now,
            updated_at=now,
            started_at=now if initial_status == SessionStatus.ACTIVE else None,
        )
        created = self.gateway.create(session)

        self.logger.info(
            "session_created",
            extra={
                "session_id": created.id,
                "status": created.status,
                "question_count": len(created.questions),
                "generation_warning": warning,
            },
        )
        return created

    def schedule(
        self,
        *,
        role: str | None,
        candidate_name: str | None = None,
        language: str | None = None,
        skill_level: str | None = None,
        caller: Caller | None = None,
    ) -> InterviewSession:
        """Create a session that waits in `scheduled` until `start`."""
        return self.create(
            role=role,
            candidate_name=candidate_name,
            language=language,
            skill_level=skill_level,
            caller=caller,
            initial_status=SessionStatus.SCHEDULED,
        )

    def _generate(
        self, role: str, skill_level: str, language: str
    ) -> tuple[GeneratedQuestionSet, str | None]:
        try:
            generated = self.generator.generate_questions(role, skill_level, language)
        except UpstreamUnavailable:
            self.logger.warning("generation_degraded", extra={"role": role})
            return GeneratedQuestionSet(), GENERATION_UNAVAILABLE_WARNING

        if generated.is_empty:
            return generated, GENERATION_EMPTY_WARNING
        return generated, None

    # -------------------------
    # Reads
    # -------------------------

    def get(self, session_id: str) -> InterviewSession:
        return self.gateway.get(session_id)

    def list_sessions(
        self, *, limit: int | None = None, owner_id: str | None = None
    ) -> list[InterviewSession]:
        """Newest sessions first, capped at the configured list limit."""
        if limit is not None and limit < 1:
            raise ValidationError("limit must be >= 1")
        effective = min(limit or self.settings.list_limit, self.settings.list_limit)
        return self.gateway.list_recent(limit=effective, owner_id=owner_id)

    def audio_access_url(self, session_id: str, ttl_seconds: int | None = None) -> str:
        session = self.gateway.get(session_id)
        if not session.audio_key:
            raise NotFound(f"session {session_id} has no audio artifact")
        return self.artifacts.get_access_url(session.audio_key, ttl_seconds)

    # -------------------------
    # Transitions
    # -------------------------

    def start(self, session_id: str) -> InterviewSession:
        session = self.gateway.get(session_id)
        self._require_status(session, {SessionStatus.SCHEDULED}, "start")
        return self._transition(
            session,
            SessionStatus.ACTIVE,
            SessionPatch(set={"status": SessionStatus.ACTIVE.value, "started_at": self.clock()}),
        )

    def append_transcript(self, session_id: str, turn: str) -> InterviewSession:
        if not isinstance(turn, str) or not turn.strip():
            raise ValidationError("transcript turn must be a non-empty string")

        session = self.gateway.get(session_id)
        self._require_status(session, {SessionStatus.ACTIVE}, "append to the transcript of")
        return self.gateway.update_fields(
            session_id,
            SessionPatch(append_transcript=(turn,)),
            expected_status=SessionStatus.ACTIVE,
        )

    def attach_audio(self, session_id: str, data: bytes, mime_type: str) -> InterviewSession:
        """Upload the recording and record its location (write-once)."""
        if len(data) > self.settings.max_audio_bytes:
            raise ValidationError(f"audio upload exceeds {self.settings.max_audio_bytes} bytes")

        session = self.gateway.get(session_id)
        self._require_status(session, {SessionStatus.ACTIVE}, "attach audio to")
        if session.audio_url is not None:
            raise AlreadySet(f"audio_url is already set for session {session_id}")

        artifact = self.artifacts.store_artifact(session_id, data, mime_type)

        updated = self.gateway.update_fields(
            session_id,
            SessionPatch(
                set={"audio_url": artifact.url, "audio_key": artifact.key},
                require_unset=("audio_url",),
            ),
            expected_status=SessionStatus.ACTIVE,
        )
        self.logger.info("audio_attached", extra={"session_id": session_id, "key": artifact.key})
        return updated

    def submit_feedback(
        self,
        session_id: str,
        rubric_inputs: Mapping[str, Any],
        feedback_text: str,
        *,
        caller: Caller | None = None,
    ) -> InterviewSession:
        """Score the rubric and complete the session in one guarded patch."""
        if caller is not None and caller.role not in FEEDBACK_ROLES:
            raise Forbidden("only recruiters and admins may submit feedback")
        if not isinstance(feedback_text, str) or not feedback_text.strip():
            raise ValidationError("feedback text is required")

        session = self.gateway.get(session_id)
        self._require_status(session, {SessionStatus.ACTIVE}, "submit feedback for")

        weights = self.settings.score_weights
        scores = validate_rubric(rubric_inputs, weights)
        final_score = compute_score(scores, weights)

        return self._transition(
            session,
            SessionStatus.COMPLETED,
            SessionPatch(
                set={
                    "status": SessionStatus.COMPLETED.value,
                    "scores": scores,
                    "final_score": final_score,
                    "feedback": feedback_text.strip(),
                    "ended_at": self.clock(),
                },
                require_unset=("final_score", "feedback"),
            ),
            final_score=final_score,
        )

    def cancel(self, session_id: str) -> InterviewSession:
        session = self.gateway.get(session_id)
        self._require_status(session, CANCELLABLE_STATUSES, "cancel")
        return self._transition(
            session,
            SessionStatus.CANCELLED,
            SessionPatch(set={"status": SessionStatus.CANCELLED.value, "ended_at": self.clock()}),
        )

    def end(self, session_id: str) -> InterviewSession:
        """Complete an active session without a rubric. Terminal: no feedback afterwards."""
        session = self.gateway.get(session_id)
        self._require_status(session, {SessionStatus.ACTIVE}, "end")
        return self._transition(
            session,
            SessionStatus.COMPLETED,
            SessionPatch(set={"status": SessionStatus.COMPLETED.value, "ended_at": self.clock()}),
        )

    # -------------------------
    # Helpers
    # -------------------------

    def _transition(
        self,
        session: InterviewSession,
        target: SessionStatus,
        patch: SessionPatch,
        **log_fields: Any,
    ) -> InterviewSession:
        source = SessionStatus(session.status)
        updated = self.gateway.update_fields(session.id, patch, expected_status=source)
        self.logger.info(
            "session_transition",
            extra={
                "session_id": session.id,
                "from_status": source.value,
                "to_status": target.value,
                **log_fields,
            },
        )
        return updated

    @staticmethod
    def _require_status(
        session: InterviewSession,
        allowed: Iterable[SessionStatus],
        action: str,
    ) -> None:
        if SessionStatus(session.status) not in set(allowed):
            raise InvalidState(
                f"cannot {action} session {session.id} in status {session.status}"
            )
