"""HTTP API surface for interview sessions.

Requests arrive already authenticated; the caller identity is forwarded by the
gateway in front of this app as `X-Caller-Id` / `X-Caller-Role` headers.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool

from .errors import InterviewError, ValidationError
from .lifecycle import SessionLifecycleManager
from .models import (
    Caller,
    CreateSessionRequest,
    FeedbackRequest,
    InterviewSession,
    TranscriptTurnRequest,
)


app = FastAPI(title="Interview Session Core", version="0.1.0")

STATUS_BY_KIND = {
    "validation_error": 400,
    "invalid_input": 400,
    "forbidden": 403,
    "not_found": 404,
    "invalid_state": 409,
    "state_conflict": 409,
    "already_set": 409,
    "upstream_unavailable": 502,
    "storage_unavailable": 503,
}


class AccessUrlResponse(BaseModel):
    url: str


@lru_cache(maxsize=1)
def get_manager() -> SessionLifecycleManager:
    """Create and cache one manager instance for the process lifetime."""
    return SessionLifecycleManager.from_env()


def get_caller(
    x_caller_id: str | None = Header(default=None),
    x_caller_role: str | None = Header(default=None),
) -> Caller | None:
    """Build the caller from gateway headers.

    Only a missing id is an authentication failure. An unrecognized role is a
    valid identity; role-gated operations reject it with 403.
    """
    if x_caller_id is None and x_caller_role is None:
        return None
    try:
        return Caller(id=x_caller_id or "", role=x_caller_role or "")
    except PydanticValidationError as err:
        raise HTTPException(status_code=401, detail="caller id required") from err


def require_caller(caller: Caller | None = Depends(get_caller)) -> Caller:
    if caller is None:
        raise HTTPException(status_code=401, detail="caller identity required")
    return caller


@app.exception_handler(InterviewError)
async def handle_interview_error(_request: Request, err: InterviewError) -> JSONResponse:
    body = err.to_dict()
    if err.retryable:
        body["retryable"] = True
    return JSONResponse(status_code=STATUS_BY_KIND.get(err.kind, 500), content=body)


@app.get("/healthz")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/sessions", response_model=InterviewSession, status_code=201)
def create_session(
    request: CreateSessionRequest,
    caller: Caller | None = Depends(get_caller),
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.create(
        role=request.role,
        candidate_name=request.candidate_name,
        language=request.language,
        skill_level=request.skill_level,
        caller=caller,
    )


@app.post("/sessions/schedule", response_model=InterviewSession, status_code=201)
def schedule_session(
    request: CreateSessionRequest,
    caller: Caller | None = Depends(get_caller),
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.schedule(
        role=request.role,
        candidate_name=request.candidate_name,
        language=request.language,
        skill_level=request.skill_level,
        caller=caller,
    )


@app.get("/sessions", response_model=list[InterviewSession])
def list_sessions(
    limit: int | None = None,
    owner_id: str | None = None,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> list[InterviewSession]:
    return manager.list_sessions(limit=limit, owner_id=owner_id)


@app.get("/sessions/{session_id}", response_model=InterviewSession)
def get_session(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.get(session_id)


@app.post("/sessions/{session_id}/start", response_model=InterviewSession)
def start_session(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.start(session_id)


@app.post("/sessions/{session_id}/transcript", response_model=InterviewSession)
def append_transcript(
    session_id: str,
    request: TranscriptTurnRequest,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.append_transcript(session_id, request.turn)


@app.post("/sessions/{session_id}/audio", response_model=InterviewSession)
async def upload_audio(
    session_id: str,
    request: Request,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    """Raw audio bytes in the body; the Content-Type header names the format.

    The body is read in chunks and rejected as soon as it passes
    `Settings.max_audio_bytes`, so an oversized upload is never fully buffered.
    """
    limit = manager.settings.max_audio_bytes
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise ValidationError(f"audio upload exceeds {limit} bytes")

    buffer = bytearray()
    async for chunk in request.stream():
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise ValidationError(f"audio upload exceeds {limit} bytes")

    mime_type = request.headers.get("content-type", "")
    return await run_in_threadpool(manager.attach_audio, session_id, bytes(buffer), mime_type)


@app.get("/sessions/{session_id}/audio-url", response_model=AccessUrlResponse)
def audio_access_url(
    session_id: str,
    ttl_seconds: int | None = None,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> AccessUrlResponse:
    return AccessUrlResponse(url=manager.audio_access_url(session_id, ttl_seconds))


@app.post("/sessions/{session_id}/feedback", response_model=InterviewSession)
def submit_feedback(
    session_id: str,
    request: FeedbackRequest,
    caller: Caller = Depends(require_caller),
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.submit_feedback(session_id, request.scores, request.feedback, caller=caller)


@app.post("/sessions/{session_id}/cancel", response_model=InterviewSession)
def cancel_session(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.cancel(session_id)


@app.post("/sessions/{session_id}/end", response_model=InterviewSession)
def end_session(
    session_id: str,
    manager: SessionLifecycleManager = Depends(get_manager),
) -> InterviewSession:
    return manager.end(session_id)
