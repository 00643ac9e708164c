"""Interview session lifecycle, question generation and rubric scoring."""

from .artifacts import ArtifactCoordinator, ObjectStorageError, S3ObjectStorage, StoredArtifact
from .config import Settings
from .errors import (
    AlreadySet,
    Forbidden,
    InterviewError,
    InvalidInput,
    InvalidState,
    NotFound,
    StateConflict,
    StorageUnavailable,
    UpstreamUnavailable,
    ValidationError,
)
from .generation import GeneratedQuestionSet, QuestionGenerator
from .lifecycle import SessionLifecycleManager
from .llm_client import GeminiLLMClient, LLMClientError, OpenAIChatClient, client_from_env
from .models import Caller, CallerRole, InterviewSession, SessionStatus, SkillLevel
from .scoring import ScoreWeights, compute_score
from .store import DocumentStoreError, InMemoryDocumentStore, SessionPatch, SessionStoreGateway

__all__ = [
    "SessionLifecycleManager",
    "SessionStoreGateway",
    "SessionPatch",
    "InMemoryDocumentStore",
    "DocumentStoreError",
    "QuestionGenerator",
    "GeneratedQuestionSet",
    "ArtifactCoordinator",
    "S3ObjectStorage",
    "StoredArtifact",
    "ObjectStorageError",
    "GeminiLLMClient",
    "OpenAIChatClient",
    "LLMClientError",
    "client_from_env",
    "compute_score",
    "ScoreWeights",
    "Settings",
    "InterviewSession",
    "SessionStatus",
    "SkillLevel",
    "Caller",
    "CallerRole",
    "InterviewError",
    "ValidationError",
    "InvalidInput",
    "NotFound",
    "InvalidState",
    "StateConflict",
    "AlreadySet",
    "Forbidden",
    "UpstreamUnavailable",
    "StorageUnavailable",
]
