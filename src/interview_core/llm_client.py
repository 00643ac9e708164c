"""Language model clients.

Both clients implement the `LLMClient` protocol used by `QuestionGenerator`:
one request in, raw text out. They make exactly one HTTP call per `generate`
and never retry; any transport failure, timeout or unusable provider response
becomes `LLMClientError`.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from http.client import HTTPException
from typing import Any, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


class LLMClientError(RuntimeError):
    """Raised when an upstream LLM provider call fails."""


class LLMClient(Protocol):
    """Minimal interface expected by the generator for LLM calls."""

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Return model text output for a single call."""


def _timeout_from_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be numeric") from err


def _post_json(
    *,
    provider: str,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout_seconds: float,
) -> dict[str, Any]:
    """POST a JSON body and decode the JSON reply, mapping every failure to LLMClientError."""
    body = json.dumps(payload, ensure_ascii=True).encode("utf-8")
    request = Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json", **headers},
    )

    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            raw_bytes = response.read()
    except HTTPError as err:
        details = err.read().decode("utf-8", errors="replace")
        raise LLMClientError(f"{provider} HTTP {err.code}: {details}") from err
    except URLError as err:
        raise LLMClientError(f"{provider} network error: {err}") from err
    except TimeoutError as err:
        raise LLMClientError(f"{provider} timed out after {timeout_seconds}s") from err
    except HTTPException as err:
        raise LLMClientError(f"{provider} connection dropped mid-response: {err!r}") from err

    try:
        response_json = json.loads(raw_bytes.decode("utf-8"))
    except UnicodeDecodeError as err:
        raise LLMClientError(f"{provider} returned a response that is not UTF-8") from err
    except (json.JSONDecodeError, RecursionError) as err:
        raise LLMClientError(f"{provider} returned non-JSON response") from err
    if not isinstance(response_json, dict):
        raise LLMClientError(f"{provider} returned an unexpected JSON document")
    return response_json


@dataclass(slots=True)
class OpenAIChatClient:
    """OpenAI chat-completions client.

    Environment variables (used by `from_env`):
    - `OPENAI_API_KEY` (required)
    - `OPENAI_MODEL` (default: gpt-4o-mini)
    - `OPENAI_API_BASE` (default: https://api.openai.com/v1)
    - `OPENAI_TIMEOUT_SECONDS` (default: 60)
    """

    api_key: str
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com/v1"
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> OpenAIChatClient:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError("Missing API key. Set OPENAI_API_KEY in environment.")

        return cls(
            api_key=api_key,
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            api_base=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
            timeout_seconds=_timeout_from_env("OPENAI_TIMEOUT_SECONDS", "60"),
        )

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        del metadata  # Reserved for tracing; not sent to the provider.

        messages: list[dict[str, str]] = []
        if system_prompt.strip():
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature

        response_json = _post_json(
            provider="OpenAI",
            url=f"{self.api_base.rstrip('/')}/chat/completions",
            payload=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout_seconds=self.timeout_seconds,
        )

        text = self._extract_text(response_json)
        if text == "":
            raise LLMClientError("OpenAI response did not include message content")
        return text

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        """Return the first choice's message content, or "" when absent."""
        choices = response_json.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content.strip() if isinstance(content, str) else ""


@dataclass(slots=True)
class GeminiLLMClient:
    """Gemini REST client.

    Environment variables (used by `from_env`):
    - `GEMINI_API_KEY` (preferred) or `GOOGLE_API_KEY`
    - `GEMINI_MODEL` (default: gemini-2.5-flash)
    - `GEMINI_API_VERSION` (default: v1beta)
    - `GEMINI_API_BASE` (default: https://generativelanguage.googleapis.com)
    - `GEMINI_TIMEOUT_SECONDS` (default: 60)
    """

    api_key: str
    model: str = "gemini-2.5-flash"
    api_version: str = "v1beta"
    api_base: str = "https://generativelanguage.googleapis.com"
    timeout_seconds: float = 60.0

    @classmethod
    def from_env(cls) -> GeminiLLMClient:
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ValueError(
                "Missing API key. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in environment."
            )

        return cls(
            api_key=api_key,
            model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            api_version=os.getenv("GEMINI_API_VERSION", "v1beta"),
            api_base=os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com"),
            timeout_seconds=_timeout_from_env("GEMINI_TIMEOUT_SECONDS", "60"),
        )

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        del metadata

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}]
        }
        if system_prompt.strip():
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if temperature is not None:
            payload["generationConfig"] = {"temperature": temperature}

        response_json = _post_json(
            provider="Gemini",
            url=self._build_generate_url(),
            payload=payload,
            headers={"x-goog-api-key": self.api_key},
            timeout_seconds=self.timeout_seconds,
        )

        text = self._extract_text(response_json)
        if text == "":
            raise LLMClientError("Gemini response did not include text")
        return text

    def _build_generate_url(self) -> str:
        model_name = self.model.removeprefix("models/")
        return (
            f"{self.api_base.rstrip('/')}/{self.api_version}/models/{model_name}:generateContent"
        )

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        """Extract concatenated text parts from the first candidate that has any."""
        candidates = response_json.get("candidates")
        if not isinstance(candidates, list):
            return ""

        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict):
                continue
            parts = content.get("parts")
            if not isinstance(parts, list):
                continue

            text_chunks = [
                part["text"]
                for part in parts
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            ]
            if text_chunks:
                return "\n".join(text_chunks).strip()

        return ""


def client_from_env() -> LLMClient:
    """Pick a provider by `INTERVIEW_LLM_PROVIDER` (openai | gemini)."""
    provider = os.getenv("INTERVIEW_LLM_PROVIDER", "openai").strip().lower()
    if provider == "openai":
        return OpenAIChatClient.from_env()
    if provider == "gemini":
        return GeminiLLMClient.from_env()
    raise ValueError(f"Unsupported INTERVIEW_LLM_PROVIDER: {provider!r}")
