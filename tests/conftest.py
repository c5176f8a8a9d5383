"""
Pytest fixtures for reklog-storage tests.

Provides an in-memory backing store and client fixtures for testing
without actual network connections.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

import pytest

from reklog_storage import RekLogStorage, StoreError
from reklog_storage.types import ClientIdentity


class MockStore:
    """In-memory backing store recording every call it receives."""

    def __init__(self) -> None:
        self.storages: dict[str, dict[str, Any]] = {
            "test-key": {"_id": "storage-1", "name": "acme"},
        }
        self._data: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.gate: asyncio.Event | None = None
        self.validation_error: BaseException | None = None
        self.fail_next: StoreError | None = None
        self.closed = False

    @property
    def store_calls(self) -> list[tuple[Any, ...]]:
        """Calls other than the handshake."""
        return [call for call in self.calls if call[0] != "validate_credential"]

    def _record(self, operation: str, identity: ClientIdentity, *args: Any) -> None:
        self.calls.append((operation, identity.database_name, *args))
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def _get_collection_data(self, database: str, collection: str) -> list[dict[str, Any]]:
        """Get or create collection data."""
        return self._data.setdefault(database, {}).setdefault(collection, [])

    async def validate_credential(self, api_key: str, environment: str) -> dict[str, Any]:
        self.calls.append(("validate_credential", api_key, environment))
        if self.gate is not None:
            await self.gate.wait()
        if self.validation_error is not None:
            raise self.validation_error
        storage = self.storages.get(api_key)
        if storage is None:
            raise StoreError("Invalid API key", status_code=401)
        return {
            "storageId": storage["_id"],
            "databaseName": f"{storage['name']}-{environment}",
        }

    async def insert(
        self,
        identity: ClientIdentity,
        collection: str,
        documents: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, Any]:
        self._record("insert", identity, collection, documents)
        data = self._get_collection_data(identity.database_name, collection)
        batch = documents if isinstance(documents, list) else [documents]

        ids = []
        for document in batch:
            doc = dict(document)
            doc.setdefault("_id", str(uuid.uuid4()))
            if any(existing["_id"] == doc["_id"] for existing in data):
                raise StoreError("E11000 duplicate key error", status_code=400)
            data.append(doc)
            ids.append(doc["_id"])

        if isinstance(documents, list):
            # JSON objects carry string keys
            return {
                "insertedCount": len(ids),
                "insertedIds": {str(i): _id for i, _id in enumerate(ids)},
            }
        return {"insertedId": ids[0]}

    async def find(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        self._record("find", identity, collection, filter, options)
        return self._select(identity, collection, filter, options)

    async def find_all(
        self,
        identity: ClientIdentity,
        collection: str,
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        self._record("find_all", identity, collection, options)
        return self._select(identity, collection, {}, options)

    def _select(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        data = self._get_collection_data(identity.database_name, collection)
        results = [dict(doc) for doc in data if self._matches(doc, filter)]

        sort = options.get("sort")
        if sort:
            for field, direction in reversed(list(sort.items())):
                results.sort(key=lambda x: x.get(field, ""), reverse=(direction == -1))

        skip = options.get("skip", 0)
        if skip:
            results = results[skip:]

        limit = options.get("limit", 0)
        if limit:
            results = results[:limit]

        projection = options.get("projection")
        if projection:
            results = [self._project(doc, projection) for doc in results]

        return results

    async def update(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any]:
        self._record("update", identity, collection, filter, update)
        data = self._get_collection_data(identity.database_name, collection)
        matched = 0
        modified = 0

        for doc in data:
            if self._matches(doc, filter):
                matched += 1
                if self._apply_update(doc, update):
                    modified += 1

        return {"matchedCount": matched, "modifiedCount": modified}

    async def delete(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> dict[str, Any]:
        self._record("delete", identity, collection, filter)
        data = self._get_collection_data(identity.database_name, collection)
        kept = [doc for doc in data if not self._matches(doc, filter)]
        self._data[identity.database_name][collection] = kept
        return {"deletedCount": len(data) - len(kept)}

    async def count(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> int:
        self._record("count", identity, collection, filter)
        data = self._get_collection_data(identity.database_name, collection)
        return sum(1 for doc in data if self._matches(doc, filter))

    async def aggregate(
        self,
        identity: ClientIdentity,
        collection: str,
        pipeline: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Supports $match stages only."""
        self._record("aggregate", identity, collection, pipeline)
        results = list(self._get_collection_data(identity.database_name, collection))
        for stage in pipeline:
            if "$match" in stage:
                results = [doc for doc in results if self._matches(doc, stage["$match"])]
        return results

    async def create_index(
        self,
        identity: ClientIdentity,
        collection: str,
        keys: dict[str, Any],
        options: dict[str, Any],
    ) -> str:
        self._record("create_index", identity, collection, keys, options)
        return options.get("name") or "_".join(f"{k}_{d}" for k, d in keys.items())

    async def drop_index(self, identity: ClientIdentity, collection: str, name: str) -> None:
        self._record("drop_index", identity, collection, name)

    async def list_collections(self, identity: ClientIdentity) -> list[str]:
        self._record("list_collections", identity)
        return list(self._data.get(identity.database_name, {}))

    async def drop_collection(self, identity: ClientIdentity, collection: str) -> None:
        self._record("drop_collection", identity, collection)
        self._data.get(identity.database_name, {}).pop(collection, None)

    async def close(self) -> None:
        self.closed = True

    def _matches(self, doc: dict[str, Any], filter: dict[str, Any]) -> bool:
        """Check if document matches filter."""
        for key, value in filter.items():
            if key == "$and":
                if not all(self._matches(doc, f) for f in value):
                    return False
                continue
            if key == "$or":
                if not any(self._matches(doc, f) for f in value):
                    return False
                continue

            doc_value = doc.get(key)
            if isinstance(value, dict):
                for op, op_value in value.items():
                    if op == "$eq" and doc_value != op_value:
                        return False
                    if op == "$ne" and doc_value == op_value:
                        return False
                    if op == "$gt" and (doc_value is None or doc_value <= op_value):
                        return False
                    if op == "$gte" and (doc_value is None or doc_value < op_value):
                        return False
                    if op == "$lt" and (doc_value is None or doc_value >= op_value):
                        return False
                    if op == "$in" and doc_value not in op_value:
                        return False
                    if op == "$exists" and (key in doc) != bool(op_value):
                        return False
            elif doc_value != value:
                return False

        return True

    def _apply_update(self, doc: dict[str, Any], update: dict[str, Any]) -> bool:
        """Apply update operators to document."""
        modified = False

        for op, fields in update.items():
            if op == "$set":
                for key, value in fields.items():
                    if doc.get(key) != value:
                        doc[key] = value
                        modified = True
            elif op == "$unset":
                for key in fields:
                    if key in doc:
                        del doc[key]
                        modified = True
            elif op == "$inc":
                for key, value in fields.items():
                    doc[key] = doc.get(key, 0) + value
                    modified = True
            elif op == "$push":
                for key, value in fields.items():
                    doc.setdefault(key, []).append(value)
                    modified = True

        return modified

    def _project(self, doc: dict[str, Any], projection: dict[str, int]) -> dict[str, Any]:
        """Apply projection to document."""
        include_mode = any(v for k, v in projection.items() if k != "_id")

        if include_mode:
            result = {key: doc[key] for key, include in projection.items() if include and key in doc}
            # _id is included unless explicitly excluded
            if "_id" in doc and projection.get("_id", 1) != 0:
                result["_id"] = doc["_id"]
            return result

        return {k: v for k, v in doc.items() if projection.get(k, 1) != 0}


@pytest.fixture
def mock_store() -> MockStore:
    """Create an in-memory backing store."""
    return MockStore()


@pytest.fixture
def gated_store(mock_store: MockStore) -> MockStore:
    """A store whose handshake stays pending until ``gate.set()``."""
    mock_store.gate = asyncio.Event()
    return mock_store


@pytest.fixture
async def client(mock_store: MockStore):
    """Create a client whose handshake has completed."""
    client = RekLogStorage("test-key", store=mock_store)
    await client.validate()
    return client


@pytest.fixture
async def users(client):
    """Create a collection handle."""
    return client["users"]
