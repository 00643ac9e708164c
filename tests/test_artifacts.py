from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from botocore.exceptions import ClientError

from interview_core.artifacts import (
    MAX_URL_TTL_SECONDS,
    ArtifactCoordinator,
    ObjectStorageError,
    S3ObjectStorage,
)
from interview_core.errors import StorageUnavailable, ValidationError

from conftest import FakeObjectStorage


def test_store_artifact_namespaces_keys_by_session(fake_storage: FakeObjectStorage) -> None:
    coordinator = ArtifactCoordinator(storage=fake_storage)

    first = coordinator.store_artifact("session-1", b"RIFF....", "audio/wav")
    second = coordinator.store_artifact("session-1", b"RIFF....", "audio/wav")

    assert first.key.startswith("interviews/session-1/")
    assert second.key.startswith("interviews/session-1/")
    assert first.key != second.key
    assert first.url == f"https://bucket.example/{first.key}"
    assert fake_storage.objects[first.key] == (b"RIFF....", "audio/wav")


def test_store_artifact_without_prefix(fake_storage: FakeObjectStorage) -> None:
    coordinator = ArtifactCoordinator(storage=fake_storage, key_prefix="")

    artifact = coordinator.store_artifact("abc", b"data", "audio/webm;codecs=opus")

    assert artifact.key.startswith("abc/")


@pytest.mark.parametrize(
    ("data", "mime_type"),
    [(b"", "audio/wav"), (b"data", "video/mp4"), (b"data", "")],
)
def test_store_artifact_rejects_bad_uploads(
    fake_storage: FakeObjectStorage, data: bytes, mime_type: str
) -> None:
    coordinator = ArtifactCoordinator(storage=fake_storage)

    with pytest.raises(ValidationError):
        coordinator.store_artifact("session-1", data, mime_type)

    assert fake_storage.objects == {}


def test_storage_failure_maps_to_storage_unavailable(failing_storage: FakeObjectStorage) -> None:
    coordinator = ArtifactCoordinator(storage=failing_storage)

    with pytest.raises(StorageUnavailable) as exc:
        coordinator.store_artifact("session-1", b"data", "audio/wav")
    assert "bucket unreachable" not in exc.value.message

    with pytest.raises(StorageUnavailable):
        coordinator.get_access_url("interviews/session-1/x.wav")


def test_access_url_uses_default_ttl(fake_storage: FakeObjectStorage) -> None:
    coordinator = ArtifactCoordinator(storage=fake_storage, default_ttl_seconds=900)

    url = coordinator.get_access_url("interviews/session-1/x.wav")

    assert url.endswith("?expires=900")
    assert fake_storage.signed == [("interviews/session-1/x.wav", 900)]
    assert fake_storage.objects == {}


@pytest.mark.parametrize("ttl", [0, -5, MAX_URL_TTL_SECONDS + 1])
def test_access_url_ttl_is_bounded(fake_storage: FakeObjectStorage, ttl: int) -> None:
    coordinator = ArtifactCoordinator(storage=fake_storage)

    with pytest.raises(ValidationError):
        coordinator.get_access_url("k", ttl)


class FakeS3Client:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.meta = SimpleNamespace(region_name="eu-west-1")
        self.put_calls: list[dict[str, Any]] = []
        self.presign_calls: list[tuple[str, dict[str, Any], int]] = []

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.put_calls.append(kwargs)
        return {"ETag": '"abc"'}

    def generate_presigned_url(self, operation: str, Params: dict[str, Any], ExpiresIn: int) -> str:
        if self.error is not None:
            raise self.error
        self.presign_calls.append((operation, Params, ExpiresIn))
        return f"https://signed.example/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


def test_s3_storage_puts_object_and_returns_location() -> None:
    client = FakeS3Client()
    storage = S3ObjectStorage(client=client, bucket="interview-audio")

    location = storage.put("interviews/s1/1.wav", b"data", "audio/wav")

    assert location == "https://interview-audio.s3.eu-west-1.amazonaws.com/interviews/s1/1.wav"
    assert client.put_calls == [
        {
            "Bucket": "interview-audio",
            "Key": "interviews/s1/1.wav",
            "Body": b"data",
            "ContentType": "audio/wav",
        }
    ]


def test_s3_storage_signs_get_object_urls() -> None:
    client = FakeS3Client()
    storage = S3ObjectStorage(client=client, bucket="interview-audio")

    url = storage.signed_url("interviews/s1/1.wav", 3600)

    assert url.endswith("X-Amz-Expires=3600")
    assert client.presign_calls == [
        ("get_object", {"Bucket": "interview-audio", "Key": "interviews/s1/1.wav"}, 3600)
    ]


def test_s3_client_errors_become_object_storage_errors() -> None:
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    storage = S3ObjectStorage(client=FakeS3Client(error=error), bucket="interview-audio")

    with pytest.raises(ObjectStorageError):
        storage.put("k", b"data", "audio/wav")
    with pytest.raises(ObjectStorageError):
        storage.signed_url("k", 60)


def test_s3_from_env_requires_bucket(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AWS_BUCKET_NAME", raising=False)

    with pytest.raises(ValueError, match="AWS_BUCKET_NAME"):
        S3ObjectStorage.from_env()
