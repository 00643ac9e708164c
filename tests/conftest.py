from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Any, Callable

import pytest

from interview_core.artifacts import ArtifactCoordinator, ObjectStorageError
from interview_core.config import Settings
from interview_core.generation import QuestionGenerator
from interview_core.lifecycle import SessionLifecycleManager
from interview_core.store import InMemoryDocumentStore, SessionStoreGateway


class StubLLMClient:
    def __init__(self, outputs: list[str] | None = None, error: Exception | None = None) -> None:
        self._outputs = list(outputs or [])
        self._error = error
        self.calls: list[dict[str, Any]] = []

    def generate(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "metadata": metadata or {},
            }
        )
        if self._error is not None:
            raise self._error
        if not self._outputs:
            raise RuntimeError("No stub output left")
        return self._outputs.pop(0)


class FakeObjectStorage:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.signed: list[tuple[str, int]] = []

    def put(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail:
            raise ObjectStorageError("bucket unreachable")
        self.objects[key] = (data, content_type)
        return f"https://bucket.example/{key}"

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        if self.fail:
            raise ObjectStorageError("bucket unreachable")
        self.signed.append((key, ttl_seconds))
        return f"https://bucket.example/{key}?expires={ttl_seconds}"


class TickingClock:
    """Each call returns one second later than the previous one."""

    def __init__(self) -> None:
        self._start = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        self._ticks = count()

    def __call__(self) -> datetime:
        return self._start + timedelta(seconds=next(self._ticks))


def question_set_json(*questions: Any, rubric: str = "Look for concrete examples.") -> str:
    return json.dumps({"questions": list(questions), "rubric": rubric})


@dataclass
class Harness:
    manager: SessionLifecycleManager
    llm: Any
    storage: FakeObjectStorage
    store: InMemoryDocumentStore


@pytest.fixture
def stub_llm_factory() -> Callable[..., StubLLMClient]:
    return StubLLMClient


@pytest.fixture
def fake_storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def failing_storage() -> FakeObjectStorage:
    return FakeObjectStorage(fail=True)


@pytest.fixture
def make_harness() -> Callable[..., Harness]:
    def _make(
        *,
        outputs: list[str] | None = None,
        llm_error: Exception | None = None,
        store: InMemoryDocumentStore | None = None,
        storage: FakeObjectStorage | None = None,
        settings: Settings | None = None,
        llm_client: Any = None,
    ) -> Harness:
        if outputs is None and llm_error is None and llm_client is None:
            outputs = [
                question_set_json(
                    {"q": "Describe a service you scaled.", "topic": "core", "difficulty": 2},
                    {"q": "How do you handle a failing deploy?", "topic": "ops", "difficulty": 3},
                    {"q": "Tell me about a conflict on your team.", "topic": "behavioral"},
                )
            ]
        llm = llm_client or StubLLMClient(outputs, error=llm_error)
        store = store or InMemoryDocumentStore()
        storage = storage or FakeObjectStorage()
        clock = TickingClock()
        ids = count(1)

        manager = SessionLifecycleManager(
            gateway=SessionStoreGateway(store, clock=clock),
            generator=QuestionGenerator(llm_client=llm),
            artifacts=ArtifactCoordinator(storage=storage),
            settings=settings,
            clock=clock,
            id_factory=lambda: f"session-{next(ids)}",
        )
        return Harness(manager=manager, llm=llm, storage=storage, store=store)

    return _make


@pytest.fixture
def harness(make_harness: Callable[..., Harness]) -> Harness:
    return make_harness()
