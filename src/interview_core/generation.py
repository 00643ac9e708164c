"""
Question-set generation from a role/seniority/language request.

This module wires together:
1) Prompt loading (package data, cached) and templating.
2) One LLM call through the provider-agnostic `LLMClient` protocol.
3) A recovery pipeline for the untrusted text that comes back.

Recovery pipeline, in order:
- direct:    the whole response (trimmed, markdown fences removed) is the
             expected JSON shape.
- extracted: the substring from the first "{" to the last "}" is the expected
             shape (the model wrapped valid JSON in prose).
- fallback:  nothing usable was found; return no questions and no guidance.

Garbage output degrades to the fallback and is never an error. A failed or
timed-out call is an error (`UpstreamUnavailable`) because there is no output
to recover from. No retries happen here; retry policy belongs to the caller.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import UpstreamUnavailable
from .llm_client import LLMClient, LLMClientError


RecoveryStep = Literal["direct", "extracted", "fallback"]

_JSON_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_QUESTION_TEXT_KEYS = ("q", "question", "text")

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"


class QuestionSetPayload(BaseModel):
    """Shape the model is asked to return.

    Entries of `questions` stay untyped: normalization decides how each entry
    becomes a string, so one odd entry never invalidates the whole set.
    """

    model_config = ConfigDict(extra="ignore")

    questions: list[Any] = Field(default_factory=list)
    rubric: str = ""

    @field_validator("rubric", mode="before")
    @classmethod
    def _stringify_rubric(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        return _stringify(value)


@dataclass(frozen=True)
class GeneratedQuestionSet:
    questions: list[str] = field(default_factory=list)
    rubric_guidance: str = ""
    recovered_by: RecoveryStep = "fallback"

    @property
    def is_empty(self) -> bool:
        return not self.questions


def _sha12(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]


def _truncate(text: str, max_len: int = 2000) -> str:
    return text if len(text) <= max_len else (text[:max_len] + "...[truncated]")


def _stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def normalize_question(entry: Any) -> str:
    """Reduce one model-provided entry to plain question text.

    A record with a string question field yields that field; a string is kept;
    anything else is stringified rather than dropped.
    """
    if isinstance(entry, dict):
        for key in _QUESTION_TEXT_KEYS:
            text = entry.get(key)
            if isinstance(text, str):
                return text.strip()
        return _stringify(entry)
    if isinstance(entry, str):
        return entry.strip()
    return _stringify(entry)


def _clean_text(raw_output: str) -> str:
    text = raw_output.strip().lstrip("\ufeff")
    return _JSON_FENCE_RE.sub("", text).strip()


def _parse_payload(text: str) -> QuestionSetPayload | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        # Deeply nested replies exhaust the decoder's recursion limit.
        return None
    if not isinstance(data, dict) or not ("questions" in data or "rubric" in data):
        return None
    try:
        return QuestionSetPayload.model_validate(data)
    except PydanticValidationError:
        return None


def recover_question_set(raw_output: str) -> GeneratedQuestionSet:
    """Apply the recovery pipeline to raw model text. Never raises."""
    text = _clean_text(raw_output)

    payload = _parse_payload(text)
    step: RecoveryStep = "direct"

    if payload is None:
        step = "extracted"
        start_idx = text.find("{")
        end_idx = text.rfind("}")
        if start_idx != -1 and end_idx > start_idx:
            payload = _parse_payload(text[start_idx : end_idx + 1])

    if payload is None:
        return GeneratedQuestionSet()

    try:
        questions = [normalize_question(entry) for entry in payload.questions]
    except RecursionError:
        return GeneratedQuestionSet()

    return GeneratedQuestionSet(
        questions=questions,
        rubric_guidance=payload.rubric.strip(),
        recovered_by=step,
    )


class QuestionGenerator:
    """Single-call question generator with tolerant output recovery."""

    def __init__(
        self,
        *,
        llm_client: LLMClient,
        prompts_dir: Path | None = None,
        temperature: float = 0.7,
        logger: logging.Logger | None = None,
        max_output_preview_chars: int = 2000,
    ) -> None:
        self.llm_client = llm_client
        self.prompts_dir = prompts_dir or PROMPTS_DIR
        self.temperature = temperature
        self.logger = logger or logging.getLogger("interview_core.generation")
        self.max_output_preview_chars = max_output_preview_chars

        self._prompt_cache: dict[str, str] = {}

    def generate_questions(
        self, role: str, seniority: str, language: str
    ) -> GeneratedQuestionSet:
        """Generate a question set, or raise `UpstreamUnavailable` if the call fails."""
        request_id = str(uuid4())
        system_prompt = self._load_prompt("question_set_system.txt")
        user_prompt = Template(self._load_prompt("question_set_user.txt")).safe_substitute(
            role=role,
            seniority=seniority,
            language=language,
        )

        self.logger.info(
            "generation_start",
            extra={
                "request_id": request_id,
                "role": role,
                "seniority": seniority,
                "language": language,
                "system_prompt_hash": _sha12(system_prompt),
            },
        )

        try:
            raw_output = self.llm_client.generate(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                temperature=self.temperature,
                metadata={"request_id": request_id, "target": "question_set", "json_only": True},
            )
        except (LLMClientError, TimeoutError, OSError) as err:
            self.logger.warning(
                "generation_unavailable",
                extra={"request_id": request_id, "error_type": type(err).__name__},
            )
            raise UpstreamUnavailable("question generation is unavailable") from err

        result = recover_question_set(raw_output)

        log_extra = {
            "request_id": request_id,
            "recovered_by": result.recovered_by,
            "question_count": len(result.questions),
        }
        if result.recovered_by == "fallback":
            log_extra["raw_output_preview"] = _truncate(raw_output, self.max_output_preview_chars)
            self.logger.warning("generation_unparseable", extra=log_extra)
        else:
            self.logger.info("generation_recovered", extra=log_extra)

        return result

    def _load_prompt(self, filename: str) -> str:
        """Load one prompt file (cached)."""
        if filename in self._prompt_cache:
            return self._prompt_cache[filename]

        path = self.prompts_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Missing prompt file: {path}")

        content = path.read_text(encoding="utf-8").strip()
        self._prompt_cache[filename] = content
        return content
