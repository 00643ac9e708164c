"""Audio artifact storage.

`ArtifactCoordinator` is the only component that talks to object storage. It
namespaces keys per session, validates uploads, and turns collaborator failures
into `StorageUnavailable`. It never retries: a failed upload leaves the session
untouched and the caller decides whether to try again.
"""

from __future__ import annotations

import itertools
import logging
import mimetypes
import os
import time
from dataclasses import dataclass
from typing import Any, Protocol

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageUnavailable, ValidationError


# S3 presigned URLs cannot outlive seven days.
MAX_URL_TTL_SECONDS = 7 * 24 * 3600
DEFAULT_URL_TTL_SECONDS = 3600


class ObjectStorageError(RuntimeError):
    """Raised by object storage adapters on transport or auth failures."""


class ObjectStorage(Protocol):
    """Object storage collaborator."""

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store bytes under `key` and return their location."""

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Return a time-limited read URL for `key`."""


@dataclass(frozen=True)
class StoredArtifact:
    key: str
    url: str


class S3ObjectStorage:
    """`ObjectStorage` backed by an S3 bucket.

    Environment variables (used by `from_env`):
    - `AWS_BUCKET_NAME` (required)
    - `AWS_REGION` (default: us-east-1)
    - `AWS_TIMEOUT_SECONDS` (default: 30)

    Credentials come from the standard boto3 chain.
    """

    def __init__(self, *, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_env(cls) -> S3ObjectStorage:
        bucket = os.getenv("AWS_BUCKET_NAME")
        if not bucket:
            raise ValueError("Missing bucket. Set AWS_BUCKET_NAME in environment.")

        timeout_raw = os.getenv("AWS_TIMEOUT_SECONDS", "30")
        try:
            timeout_seconds = float(timeout_raw)
        except ValueError as err:
            raise ValueError("AWS_TIMEOUT_SECONDS must be numeric") from err

        client = boto3.client(
            "s3",
            region_name=os.getenv("AWS_REGION", "us-east-1"),
            config=BotoConfig(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"total_max_attempts": 1},
            ),
        )
        return cls(client=client, bucket=bucket)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as err:
            raise ObjectStorageError(f"S3 upload failed for {key}: {err}") from err

        region = self.client.meta.region_name
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{key}"

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as err:
            raise ObjectStorageError(f"S3 URL signing failed for {key}: {err}") from err


def _extension_for(mime_type: str) -> str:
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return mimetypes.guess_extension(base_type) or ""


class ArtifactCoordinator:
    """Store audio bytes and hand out access URLs."""

    # Shared by every coordinator in the process so keys never repeat.
    _sequence = itertools.count(1)

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        key_prefix: str = "interviews",
        default_ttl_seconds: int = DEFAULT_URL_TTL_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.storage = storage
        self.key_prefix = key_prefix.strip("/")
        self.default_ttl_seconds = default_ttl_seconds
        self.logger = logger or logging.getLogger("interview_core.artifacts")

    def build_key(self, session_id: str, mime_type: str) -> str:
        suffix = f"{int(time.time() * 1000)}-{next(self._sequence)}"
        name = f"{session_id}/{suffix}{_extension_for(mime_type)}"
        return f"{self.key_prefix}/{name}" if self.key_prefix else name

    def store_artifact(self, session_id: str, data: bytes, mime_type: str) -> StoredArtifact:
        if not data:
            raise ValidationError("audio payload is empty")
        if not mime_type or not mime_type.strip().lower().startswith("audio/"):
            raise ValidationError("audio payload must have an audio/* content type")

        key = self.build_key(session_id, mime_type)
        try:
            url = self.storage.put(key, data, mime_type)
        except ObjectStorageError as err:
            self.logger.warning(
                "artifact_store_failed",
                extra={"session_id": session_id, "key": key},
            )
            raise StorageUnavailable("artifact storage is unavailable") from err

        self.logger.info(
            "artifact_stored",
            extra={"session_id": session_id, "key": key, "size_bytes": len(data)},
        )
        return StoredArtifact(key=key, url=url)

    def get_access_url(self, key: str, ttl_seconds: int | None = None) -> str:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl < 1 or ttl > MAX_URL_TTL_SECONDS:
            raise ValidationError(
                f"ttl_seconds must be between 1 and {MAX_URL_TTL_SECONDS}"
            )
        try:
            return self.storage.signed_url(key, ttl)
        except ObjectStorageError as err:
            self.logger.warning("artifact_url_failed", extra={"key": key})
            raise StorageUnavailable("artifact storage is unavailable") from err
