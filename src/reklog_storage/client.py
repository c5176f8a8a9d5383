"""
RekLogStorage - document storage client gated on API key validation.

The client starts validating its API key as soon as it is constructed.
Every operation waits for that single handshake to finish before it is
forwarded to the backing store; a failed handshake fails every operation.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .collection import Collection
from .config import StorageSettings
from .cursor import Cursor
from .http_store import HttpStore
from .types import (
    ClientIdentity,
    ConfigurationError,
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    UpdateResult,
    ValidationError,
    ValidationState,
)

if TYPE_CHECKING:
    from .store import BackingStore
    from .types import Document, Filter, Pipeline, Projection, Sort, Update

__all__ = ["RekLogStorage"]

logger = logging.getLogger(__name__)


def _sort_spec(sort: Sort) -> dict[str, int]:
    if isinstance(sort, str):
        return {sort: 1}
    if isinstance(sort, Mapping):
        return dict(sort)
    return {field: direction for field, direction in sort}


def _projection_spec(projection: Projection) -> dict[str, Any]:
    if isinstance(projection, Mapping):
        return dict(projection)
    return {field: 1 for field in projection}


def _find_options(
    limit: int | None,
    skip: int | None,
    sort: Sort,
    projection: Projection,
) -> dict[str, Any]:
    options: dict[str, Any] = {}
    if limit is not None:
        if limit < 0:
            raise ValueError("limit must be non-negative")
        if limit:
            options["limit"] = limit
    if skip is not None:
        if skip < 0:
            raise ValueError("skip must be non-negative")
        if skip:
            options["skip"] = skip
    if sort:
        options["sort"] = _sort_spec(sort)
    if projection:
        options["projection"] = _projection_spec(projection)
    return options


def _check_collection(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise ValueError("collection name must be a non-empty string")


class RekLogStorage:
    """
    Storage client with lazy API key validation.

    Construction never blocks: the API key handshake is scheduled in the
    background and operations issued before it finishes wait for it.

    Example:
        storage = RekLogStorage(os.environ["REKLOG_API_KEY"], environment="production")

        result = await storage.insert("users", {"name": "Alice"})
        users = await storage.get("users", {"status": "active"}, limit=10)
        await storage.update("users", {"name": "Alice"}, {"$set": {"status": "vip"}})
        await storage.delete("users", {"status": "inactive"})

        await storage.close()

        # Or use as async context manager
        async with RekLogStorage(api_key) as storage:
            users = storage["users"]
            ...
    """

    __slots__ = (
        "_api_key",
        "_settings",
        "_store",
        "_state",
        "_identity",
        "_failure",
        "_validation",
    )

    def __init__(
        self,
        api_key: str,
        settings: StorageSettings | None = None,
        *,
        store: BackingStore | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize the client and start validating the API key.

        Args:
            api_key: The storage API key. Keep it out of source code; see
                     from_env().
            settings: Client settings. Defaults to StorageSettings().
            store: Backing store to forward operations to. Defaults to an
                   HttpStore built from the settings.
            **options: Overrides for settings fields.
                - environment: Environment tag (default: "development").
                - endpoint: Storage API base URL.
                - timeout: Per-request timeout in seconds.
                - validation_timeout: Handshake deadline in seconds.

        Raises:
            ConfigurationError: If the API key is missing or settings are invalid.
        """
        if not isinstance(api_key, str) or not api_key:
            raise ConfigurationError("API key is required")

        settings = settings or StorageSettings()
        if options:
            settings = settings.replace(**options)

        self._api_key = api_key
        self._settings = settings
        self._store: BackingStore = store if store is not None else HttpStore(settings)
        self._state = ValidationState.PENDING
        self._identity: ClientIdentity | None = None
        self._failure: ValidationError | None = None
        self._validation: asyncio.Task[None] | None = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Built outside an event loop; the handshake starts on first use.
            pass
        else:
            self._validation = loop.create_task(self._validate())

    @classmethod
    def from_env(cls, *, store: BackingStore | None = None, **options: Any) -> RekLogStorage:
        """
        Create a client from REKLOG_* environment variables.

        Reads the API key from REKLOG_API_KEY and settings from
        StorageSettings.from_env().
        """
        return cls(
            os.environ.get("REKLOG_API_KEY", ""),
            StorageSettings.from_env(),
            store=store,
            **options,
        )

    @property
    def settings(self) -> StorageSettings:
        """Get the client settings."""
        return self._settings

    @property
    def environment(self) -> str:
        """Get the environment tag."""
        return self._settings.environment

    @property
    def store(self) -> BackingStore:
        """Get the backing store."""
        return self._store

    @property
    def state(self) -> ValidationState:
        """Get the handshake state."""
        return self._state

    @property
    def is_validated(self) -> bool:
        """Check if the API key has been validated."""
        return self._state is ValidationState.VALIDATED

    @property
    def identity(self) -> ClientIdentity | None:
        """Get the validated identity, or None before validation succeeds."""
        return self._identity

    @property
    def storage_id(self) -> str | None:
        """Get the storage id resolved by validation."""
        return self._identity.storage_id if self._identity else None

    @property
    def database_name(self) -> str | None:
        """Get the logical database name resolved by validation."""
        return self._identity.database_name if self._identity else None

    async def _validate(self) -> None:
        """Run the handshake once and record its outcome."""
        environment = self._settings.environment
        try:
            data = await asyncio.wait_for(
                self._store.validate_credential(self._api_key, environment),
                timeout=self._settings.validation_timeout,
            )
            identity = ClientIdentity(
                api_key=self._api_key,
                environment=environment,
                storage_id=str(data.get("storageId", "")),
                database_name=str(data["databaseName"]),
            )
        except Exception as e:
            if isinstance(e, asyncio.TimeoutError):
                reason = (
                    f"validation timed out after {self._settings.validation_timeout} seconds"
                )
            elif isinstance(e, KeyError):
                reason = "validation response did not include a database name"
            else:
                reason = getattr(e, "message", None) or str(e) or type(e).__name__
            self._fail(reason, e)
            return

        self._identity = identity
        self._state = ValidationState.VALIDATED
        logger.info(
            "API key validated (storage=%s, database=%s)",
            identity.storage_id,
            identity.database_name,
        )

    def _fail(self, reason: str, cause: BaseException | None = None) -> None:
        failure = ValidationError(f"API key validation failed: {reason}", reason=reason)
        failure.__cause__ = cause
        self._failure = failure
        self._state = ValidationState.FAILED
        logger.warning("API key validation failed: %s", reason)

    def _validation_task(self) -> asyncio.Task[None]:
        if self._validation is None:
            self._validation = asyncio.get_running_loop().create_task(self._validate())
        return self._validation

    async def _ensure_validated(self) -> ClientIdentity:
        """Wait for the handshake and return the validated identity."""
        if self._state is ValidationState.PENDING:
            task = self._validation_task()
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                # Only a handshake cancelled by close() falls through.
                if not task.cancelled():
                    raise

        if self._state is ValidationState.FAILED:
            assert self._failure is not None
            raise self._failure

        assert self._identity is not None
        return self._identity

    async def validate(self) -> ClientIdentity:
        """
        Wait for the API key handshake to finish.

        Returns:
            The validated ClientIdentity.

        Raises:
            ValidationError: If the handshake failed.
        """
        return await self._ensure_validated()

    async def insert(
        self,
        collection: str,
        documents: Document | Sequence[Document],
    ) -> InsertOneResult | InsertManyResult:
        """
        Insert one document or a list of documents.

        Args:
            collection: Collection name.
            documents: A single document, or a list/tuple of documents.

        Returns:
            InsertOneResult for a single document, InsertManyResult with the
            inserted count and a position-to-id mapping for a list.

        Raises:
            TypeError: If documents is neither a mapping nor a sequence of mappings.
            ValueError: If an empty list of documents is given.
            ValidationError: If the API key is invalid.
            StoreError: If the store rejects the payload.
        """
        _check_collection(collection)
        if isinstance(documents, Mapping):
            payload: dict[str, Any] | list[dict[str, Any]] = dict(documents)
        elif isinstance(documents, (list, tuple)):
            if not all(isinstance(doc, Mapping) for doc in documents):
                raise TypeError("documents must be mappings")
            payload = [dict(doc) for doc in documents]
            if not payload:
                raise ValueError("documents must not be empty")
        else:
            raise TypeError(
                f"documents must be a mapping or a list of mappings, not {type(documents).__name__}"
            )

        identity = await self._ensure_validated()
        result = await self._store.insert(identity, collection, payload)

        if isinstance(payload, dict):
            return InsertOneResult(
                inserted_id=result.get("insertedId", payload.get("_id")),
                acknowledged=result.get("acknowledged", True),
            )

        raw_ids = result.get("insertedIds") or {}
        if isinstance(raw_ids, Mapping):
            inserted_ids = {int(index): value for index, value in raw_ids.items()}
        else:
            inserted_ids = dict(enumerate(raw_ids))
        return InsertManyResult(
            inserted_count=result.get("insertedCount", len(inserted_ids)),
            inserted_ids=inserted_ids,
            acknowledged=result.get("acknowledged", True),
        )

    async def get(
        self,
        collection: str,
        query: Filter | None = None,
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: Sort = None,
        projection: Projection = None,
    ) -> list[dict[str, Any]]:
        """
        Get documents matching a query.

        Args:
            collection: Collection name.
            query: Query filter (default: match all).
            limit: Maximum number of documents to return.
            skip: Number of documents to skip.
            sort: Field-to-direction mapping, list of (field, direction)
                  pairs, or a single field name for ascending order.
            projection: Field inclusion/exclusion mapping or list of fields.

        Returns:
            List of matching documents.
        """
        _check_collection(collection)
        options = _find_options(limit, skip, sort, projection)

        identity = await self._ensure_validated()
        return await self._store.find(identity, collection, dict(query or {}), options)

    async def get_all(
        self,
        collection: str,
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: Sort = None,
        projection: Projection = None,
    ) -> list[dict[str, Any]]:
        """Get every document in a collection. Accepts the options of get()."""
        _check_collection(collection)
        options = _find_options(limit, skip, sort, projection)

        identity = await self._ensure_validated()
        return await self._store.find_all(identity, collection, options)

    async def find_one(
        self,
        collection: str,
        query: Filter | None = None,
        *,
        projection: Projection = None,
    ) -> dict[str, Any] | None:
        """Get the first document matching a query, or None."""
        documents = await self.get(collection, query, limit=1, projection=projection)
        return documents[0] if documents else None

    def find(self, collection: str, query: Filter | None = None) -> Cursor:
        """
        Build a lazy cursor over a query.

        Example:
            docs = await storage.find("users").sort("name").limit(10).to_list()
        """
        _check_collection(collection)
        return Cursor(self, collection, query)

    async def update(
        self,
        collection: str,
        query: Filter,
        update: Update,
    ) -> UpdateResult:
        """
        Update documents matching a query.

        Args:
            collection: Collection name.
            query: Query filter selecting documents.
            update: Update operations ($set, $inc, $push, etc.).

        Returns:
            UpdateResult with match/modify counts. A query matching nothing
            gives zero counts.
        """
        _check_collection(collection)
        if not update:
            raise ValueError("update document must not be empty")

        identity = await self._ensure_validated()
        result = await self._store.update(
            identity, collection, dict(query or {}), dict(update)
        )
        return UpdateResult(
            matched_count=result.get("matchedCount", 0),
            modified_count=result.get("modifiedCount", 0),
            acknowledged=result.get("acknowledged", True),
        )

    async def delete(self, collection: str, query: Filter) -> DeleteResult:
        """
        Delete documents matching a query.

        Returns:
            DeleteResult with the deleted count. A query matching nothing
            gives a zero count.
        """
        _check_collection(collection)
        identity = await self._ensure_validated()
        result = await self._store.delete(identity, collection, dict(query or {}))
        return DeleteResult(
            deleted_count=result.get("deletedCount", 0),
            acknowledged=result.get("acknowledged", True),
        )

    async def count(self, collection: str, query: Filter | None = None) -> int:
        """Count documents matching a query."""
        _check_collection(collection)
        identity = await self._ensure_validated()
        return await self._store.count(identity, collection, dict(query or {}))

    async def aggregate(self, collection: str, pipeline: Pipeline) -> list[dict[str, Any]]:
        """Run an aggregation pipeline."""
        _check_collection(collection)
        identity = await self._ensure_validated()
        return await self._store.aggregate(
            identity, collection, [dict(stage) for stage in pipeline]
        )

    async def create_index(
        self,
        collection: str,
        keys: Sort,
        **options: Any,
    ) -> str:
        """
        Create an index.

        Args:
            collection: Collection name.
            keys: Field name, field-to-direction mapping, or list of
                  (field, direction) pairs.
            **options: Index options (unique, sparse, name, etc.).

        Returns:
            Name of the created index.
        """
        _check_collection(collection)
        if not keys:
            raise ValueError("index keys must not be empty")
        identity = await self._ensure_validated()
        return await self._store.create_index(identity, collection, _sort_spec(keys), options)

    async def drop_index(self, collection: str, name: str) -> None:
        """Drop an index by name."""
        _check_collection(collection)
        identity = await self._ensure_validated()
        await self._store.drop_index(identity, collection, name)

    async def list_collections(self) -> list[str]:
        """List collection names in the validated database."""
        identity = await self._ensure_validated()
        return await self._store.list_collections(identity)

    async def drop_collection(self, collection: str) -> None:
        """Drop a collection."""
        _check_collection(collection)
        identity = await self._ensure_validated()
        await self._store.drop_collection(identity, collection)

    def __getitem__(self, name: str) -> Collection:
        """
        Get a collection handle using subscript notation.

        Example:
            users = storage["users"]
        """
        _check_collection(name)
        return Collection(self, name)

    def get_collection(self, name: str) -> Collection:
        """Get a collection handle by name."""
        return self[name]

    async def close(self) -> None:
        """Close the backing store. A pending handshake is cancelled and fails."""
        if self._validation is not None and not self._validation.done():
            self._validation.cancel()
        if self._state is ValidationState.PENDING:
            self._fail("client was closed before validation completed")
        await self._store.close()

    async def __aenter__(self) -> RekLogStorage:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"RekLogStorage({self._settings.environment!r}, {self._state.value})"
