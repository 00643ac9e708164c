"""Error taxonomy for the interview session core.

Every failure that leaves the core is one of the classes below. Each carries a
stable `kind` (safe to branch on, safe to show to clients) and a readable
message. Collaborator exceptions are chained with `raise ... from err` so the
original cause stays available to local logs, but their text never becomes the
public message.
"""

from __future__ import annotations


class InterviewError(RuntimeError):
    """Base class for all typed core errors."""

    kind: str = "interview_error"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ValidationError(InterviewError):
    """Input has the wrong shape or a missing required value."""

    kind = "validation_error"


class InvalidInput(ValidationError):
    """Rubric inputs are missing a dimension or fall outside the allowed range."""

    kind = "invalid_input"


class NotFound(InterviewError):
    """No session (or artifact) exists for the given identifier."""

    kind = "not_found"


class InvalidState(InterviewError):
    """The requested transition is not allowed from the current status."""

    kind = "invalid_state"


class StateConflict(InterviewError):
    """A concurrent writer changed the session first. Safe for the caller to retry."""

    kind = "state_conflict"
    retryable = True


class AlreadySet(InterviewError):
    """A write-once field is already populated."""

    kind = "already_set"


class Forbidden(InterviewError):
    """The caller's role does not permit the operation."""

    kind = "forbidden"


class UpstreamUnavailable(InterviewError):
    """The language model call failed or timed out."""

    kind = "upstream_unavailable"


class StorageUnavailable(InterviewError):
    """Object storage or the session store failed or timed out."""

    kind = "storage_unavailable"
