from __future__ import annotations

import io
import json
from typing import Any

import pytest
from http.client import IncompleteRead
from urllib.error import HTTPError, URLError

from interview_core import llm_client
from interview_core.llm_client import (
    GeminiLLMClient,
    LLMClientError,
    OpenAIChatClient,
    client_from_env,
)


class FakeResponse:
    def __init__(self, body: str | bytes, read_error: Exception | None = None) -> None:
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self._read_error = read_error

    def read(self) -> bytes:
        if self._read_error is not None:
            raise self._read_error
        return self._body

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None


def install_urlopen(monkeypatch: pytest.MonkeyPatch, outcome: Any) -> list[Any]:
    requests: list[Any] = []

    def fake_urlopen(request: Any, timeout: float) -> FakeResponse:
        requests.append((request, timeout))
        if isinstance(outcome, FakeResponse):
            return outcome
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)

    monkeypatch.setattr(llm_client, "urlopen", fake_urlopen)
    return requests


def openai_body(content: str) -> str:
    return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})


def test_openai_client_sends_system_and_user_messages(monkeypatch: pytest.MonkeyPatch) -> None:
    requests = install_urlopen(monkeypatch, openai_body('  {"questions": []}  '))
    client = OpenAIChatClient(api_key="sk-test", timeout_seconds=12)

    text = client.generate(system_prompt="only json", user_prompt="Role: SRE", temperature=0.7)

    assert text == '{"questions": []}'
    request, timeout = requests[0]
    assert timeout == 12
    assert request.full_url == "https://api.openai.com/v1/chat/completions"
    assert request.get_header("Authorization") == "Bearer sk-test"
    payload = json.loads(request.data)
    assert payload["model"] == "gpt-4o-mini"
    assert payload["messages"] == [
        {"role": "system", "content": "only json"},
        {"role": "user", "content": "Role: SRE"},
    ]
    assert payload["temperature"] == 0.7


def test_gemini_client_joins_text_parts(monkeypatch: pytest.MonkeyPatch) -> None:
    body = json.dumps(
        {"candidates": [{"content": {"parts": [{"text": "part one"}, {"text": "part two"}]}}]}
    )
    requests = install_urlopen(monkeypatch, body)
    client = GeminiLLMClient(api_key="g-test", model="models/gemini-2.5-flash")

    text = client.generate(system_prompt="only json", user_prompt="Role: SRE")

    assert text == "part one\npart two"
    request, _ = requests[0]
    assert request.full_url.endswith("/v1beta/models/gemini-2.5-flash:generateContent")
    assert json.loads(request.data)["systemInstruction"] == {"parts": [{"text": "only json"}]}


@pytest.mark.parametrize(
    "outcome",
    [
        HTTPError("https://api.openai.com", 500, "boom", {}, io.BytesIO(b"server error")),
        URLError("connection refused"),
        TimeoutError("timed out"),
        "not json at all",
        json.dumps({"choices": []}),
        b"\xff\xfe garbage",
        "[" * 100_000,
        FakeResponse(b"", read_error=IncompleteRead(b'{"choi', 120)),
    ],
)
def test_openai_failures_raise_llm_client_error(
    monkeypatch: pytest.MonkeyPatch, outcome: Any
) -> None:
    install_urlopen(monkeypatch, outcome)
    client = OpenAIChatClient(api_key="sk-test")

    with pytest.raises(LLMClientError):
        client.generate(system_prompt="s", user_prompt="u")


def test_gemini_response_without_text_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    install_urlopen(monkeypatch, json.dumps({"candidates": [{"content": {"parts": []}}]}))

    with pytest.raises(LLMClientError):
        GeminiLLMClient(api_key="g-test").generate(system_prompt="s", user_prompt="u")


def test_client_from_env_selects_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("GEMINI_API_KEY", "g-test")

    monkeypatch.setenv("INTERVIEW_LLM_PROVIDER", "openai")
    assert isinstance(client_from_env(), OpenAIChatClient)

    monkeypatch.setenv("INTERVIEW_LLM_PROVIDER", "Gemini")
    assert isinstance(client_from_env(), GeminiLLMClient)

    monkeypatch.setenv("INTERVIEW_LLM_PROVIDER", "llama")
    with pytest.raises(ValueError):
        client_from_env()


def test_from_env_requires_api_key_and_numeric_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        OpenAIChatClient.from_env()

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ValueError, match="OPENAI_TIMEOUT_SECONDS"):
        OpenAIChatClient.from_env()
