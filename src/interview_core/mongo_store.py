"""MongoDB-backed `DocumentStore`."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Any

from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from .store import DocumentStoreError


def _to_mongo(document: Mapping[str, Any]) -> dict[str, Any]:
    data = dict(document)
    data["_id"] = data.pop("id")
    return data


def _from_mongo(document: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if document is None:
        return None
    data = dict(document)
    data["id"] = str(data.pop("_id"))
    return data


class MongoDocumentStore:
    """Sessions stored one document per session, keyed by session id.

    Environment variables (used by `from_env`):
    - `MONGODB_URI` (required)
    - `MONGODB_DATABASE` (default: ai-interview)
    - `MONGODB_COLLECTION` (default: interviews)
    - `MONGODB_TIMEOUT_MS` (default: 5000)
    """

    def __init__(self, collection: Collection) -> None:
        self.collection = collection

    @classmethod
    def from_env(cls) -> MongoDocumentStore:
        uri = os.getenv("MONGODB_URI")
        if not uri:
            raise ValueError("Missing connection string. Set MONGODB_URI in environment.")

        timeout_raw = os.getenv("MONGODB_TIMEOUT_MS", "5000")
        try:
            timeout_ms = int(timeout_raw)
        except ValueError as err:
            raise ValueError("MONGODB_TIMEOUT_MS must be an integer") from err

        client: MongoClient = MongoClient(
            uri,
            serverSelectionTimeoutMS=timeout_ms,
            socketTimeoutMS=timeout_ms,
            tz_aware=True,
            retryWrites=False,
        )
        database = client[os.getenv("MONGODB_DATABASE", "ai-interview")]
        return cls(database[os.getenv("MONGODB_COLLECTION", "interviews")])

    def insert(self, document: dict[str, Any]) -> None:
        try:
            self.collection.insert_one(_to_mongo(document))
        except DuplicateKeyError as err:
            raise DocumentStoreError(f"duplicate document id {document['id']}") from err
        except PyMongoError as err:
            raise DocumentStoreError(f"MongoDB insert failed: {err}") from err

    def find_one(self, doc_id: str) -> dict[str, Any] | None:
        try:
            return _from_mongo(self.collection.find_one({"_id": doc_id}))
        except PyMongoError as err:
            raise DocumentStoreError(f"MongoDB find failed: {err}") from err

    def update_one(
        self,
        doc_id: str,
        *,
        set_fields: Mapping[str, Any],
        push_fields: Mapping[str, list[Any]],
        expected_status: str | None = None,
        require_unset: Iterable[str] = (),
    ) -> dict[str, Any] | None:
        query: dict[str, Any] = {"_id": doc_id}
        if expected_status is not None:
            query["status"] = expected_status
        for name in require_unset:
            # Matches both null and missing.
            query[name] = None

        update: dict[str, Any] = {}
        if set_fields:
            update["$set"] = dict(set_fields)
        if push_fields:
            update["$push"] = {name: {"$each": list(values)} for name, values in push_fields.items()}

        try:
            document = self.collection.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as err:
            raise DocumentStoreError(f"MongoDB update failed: {err}") from err
        return _from_mongo(document)

    def find_many(
        self, *, filters: Mapping[str, Any], limit: int
    ) -> list[dict[str, Any]]:
        try:
            cursor = (
                self.collection.find(dict(filters))
                .sort("created_at", DESCENDING)
                .limit(limit)
            )
            return [_from_mongo(document) for document in cursor]
        except PyMongoError as err:
            raise DocumentStoreError(f"MongoDB query failed: {err}") from err
