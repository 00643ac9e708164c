"""Session persistence gateway.

`SessionStoreGateway` is the only path from the core to the document store.
It exposes no field setters: every change is a `SessionPatch` applied in one
atomic `update_one` call, optionally guarded by an expected-status
precondition. That precondition is the only concurrency control in the core;
no in-process locks are held per session.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .errors import AlreadySet, NotFound, StateConflict, StorageUnavailable
from .models import PATCHABLE_FIELDS, InterviewSession, SessionStatus


class DocumentStoreError(RuntimeError):
    """Raised by document store adapters on transport or server failures."""


class DocumentStore(Protocol):
    """Persistence collaborator: document-style create/find/update by id."""

    def insert(self, document: dict[str, Any]) -> None: ...

    def find_one(self, doc_id: str) -> dict[str, Any] | None: ...

    def update_one(
        self,
        doc_id: str,
        *,
        set_fields: Mapping[str, Any],
        push_fields: Mapping[str, list[Any]],
        expected_status: str | None = None,
        require_unset: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        """Apply the update atomically.

        Returns the updated document, or None when the document is missing or a
        precondition (status equality, listed fields still empty) does not hold.
        """

    def find_many(
        self, *, filters: Mapping[str, Any], limit: int
    ) -> list[dict[str, Any]]:
        """Newest documents first (by `created_at`)."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDocumentStore:
    """Process-local `DocumentStore`.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def insert(self, document: dict[str, Any]) -> None:
        doc_id = document["id"]
        with self._lock:
            if doc_id in self._documents:
                raise DocumentStoreError(f"duplicate document id {doc_id}")
            self._documents[doc_id] = copy.deepcopy(document)

    def find_one(self, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def update_one(
        self,
        doc_id: str,
        *,
        set_fields: Mapping[str, Any],
        push_fields: Mapping[str, list[Any]],
        expected_status: str | None = None,
        require_unset: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(doc_id)
            if document is None:
                return None
            if expected_status is not None and document.get("status") != expected_status:
                return None
            if any(document.get(name) is not None for name in require_unset):
                return None

            document.update(copy.deepcopy(dict(set_fields)))
            for name, values in push_fields.items():
                document.setdefault(name, []).extend(copy.deepcopy(values))
            return copy.deepcopy(document)

    def find_many(
        self, *, filters: Mapping[str, Any], limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            matches = [
                document
                for document in self._documents.values()
                if all(document.get(key) == value for key, value in filters.items())
            ]
            matches.sort(key=lambda document: document["created_at"], reverse=True)
            return [copy.deepcopy(document) for document in matches[:limit]]


@dataclass(frozen=True)
class SessionPatch:
    """One atomic change to a session.

    - `set`: field -> new value (only mutable session fields).
    - `append_transcript`: turns appended to `transcript`, in order.
    - `require_unset`: fields that must still be empty for the patch to apply
      (write-once guard).
    """

    set: Mapping[str, Any] = field(default_factory=dict)
    append_transcript: tuple[str, ...] = ()
    require_unset: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in (*self.set, *self.require_unset):
            if name not in PATCHABLE_FIELDS:
                raise ValueError(f"field {name!r} cannot be patched")
        if "transcript" in self.set:
            raise ValueError("transcript is append-only; use append_transcript")


class SessionStoreGateway:
    """Typed, precondition-aware access to stored sessions."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.logger = logger or logging.getLogger("interview_core.store")

    def create(self, draft: InterviewSession) -> InterviewSession:
        try:
            self.store.insert(draft.to_document())
        except DocumentStoreError as err:
            raise self._unavailable("insert", draft.id) from err
        return draft

    def get(self, session_id: str) -> InterviewSession:
        document = self._find(session_id)
        if document is None:
            raise NotFound(f"session {session_id} not found")
        return InterviewSession.model_validate(document)

    def list_recent(self, *, limit: int, owner_id: str | None = None) -> list[InterviewSession]:
        filters = {"owner_id": owner_id} if owner_id is not None else {}
        try:
            documents = self.store.find_many(filters=filters, limit=limit)
        except DocumentStoreError as err:
            raise self._unavailable("find_many", None) from err
        return [InterviewSession.model_validate(document) for document in documents]

    def update_fields(
        self,
        session_id: str,
        patch: SessionPatch,
        expected_status: SessionStatus | None = None,
    ) -> InterviewSession:
        expected = SessionStatus(expected_status).value if expected_status is not None else None
        set_fields = {**patch.set, "updated_at": self.clock()}
        push_fields = (
            {"transcript": list(patch.append_transcript)} if patch.append_transcript else {}
        )

        try:
            document = self.store.update_one(
                session_id,
                set_fields=set_fields,
                push_fields=push_fields,
                expected_status=expected,
                require_unset=patch.require_unset,
            )
        except DocumentStoreError as err:
            raise self._unavailable("update_one", session_id) from err

        if document is None:
            raise self._precondition_failure(session_id, patch, expected)
        return InterviewSession.model_validate(document)

    def _find(self, session_id: str) -> dict[str, Any] | None:
        try:
            return self.store.find_one(session_id)
        except DocumentStoreError as err:
            raise self._unavailable("find_one", session_id) from err

    def _precondition_failure(
        self, session_id: str, patch: SessionPatch, expected: str | None
    ) -> Exception:
        """Work out why a guarded update matched nothing."""
        current = self._find(session_id)
        if current is None:
            return NotFound(f"session {session_id} not found")

        if expected is not None and current.get("status") != expected:
            self.logger.info(
                "state_conflict",
                extra={
                    "session_id": session_id,
                    "expected_status": expected,
                    "actual_status": current.get("status"),
                },
            )
            return StateConflict(
                f"session {session_id} changed concurrently; expected status {expected}"
            )

        for name in patch.require_unset:
            if current.get(name) is not None:
                return AlreadySet(f"{name} is already set for session {session_id}")

        # The record changed between the update and this read.
        return StateConflict(f"session {session_id} changed concurrently")

    def _unavailable(self, operation: str, session_id: str | None) -> StorageUnavailable:
        self.logger.warning(
            "store_unavailable",
            extra={"operation": operation, "session_id": session_id},
        )
        return StorageUnavailable("session store is unavailable")
