"""
MotorStore - backing store that talks to MongoDB directly through Motor.

The store owns a single AsyncIOMotorClient created by ``connect()`` and
released by ``disconnect()``. API keys are resolved against a control
database holding one ``storages`` document per key.
"""

from __future__ import annotations

import logging
import os
from types import TracebackType
from typing import TYPE_CHECKING, Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from .types import NotConnectedError, StoreError

if TYPE_CHECKING:
    from .types import ClientIdentity

__all__ = ["MotorStore"]

logger = logging.getLogger(__name__)


class MotorStore:
    """
    Driver-backed store using Motor.

    Example:
        async with MotorStore("mongodb://localhost:27017") as store:
            client = RekLogStorage(api_key, store=store, environment="staging")
            await client.insert("users", {"name": "Alice"})
    """

    __slots__ = (
        "_uri",
        "_client",
        "_control_database",
        "_timeout_ms",
        "_options",
        "_connected",
        "_owns_client",
    )

    def __init__(
        self,
        uri: str | None = None,
        *,
        client: AsyncIOMotorClient | None = None,
        control_database: str = "reklog",
        timeout_ms: int = 20000,
        **connection_options: Any,
    ) -> None:
        """
        Initialize the store.

        Args:
            uri: MongoDB connection string. If not provided, uses the
                 MONGODB_URI environment variable.
            client: An already constructed Motor client. The store counts
                 as connected once ``connect()`` is called. It is closed by
                 ``disconnect()`` but kept for a later ``connect()``.
            control_database: Database holding the ``storages`` collection.
            timeout_ms: Server selection timeout in milliseconds.
            **connection_options: Extra options for AsyncIOMotorClient.
        """
        self._uri = uri or os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
        self._client: AsyncIOMotorClient | None = client
        self._control_database = control_database
        self._timeout_ms = timeout_ms
        self._options = connection_options
        self._connected = False
        self._owns_client = False

    @property
    def is_connected(self) -> bool:
        """Check if the store is connected."""
        return self._connected

    async def connect(self) -> MotorStore:
        """
        Open the driver connection.

        Returns:
            Self for chaining.

        Raises:
            StoreError: If the client cannot be created or the server does
                not answer a ping.
        """
        if self._connected:
            return self

        try:
            if self._client is None:
                self._client = AsyncIOMotorClient(
                    self._uri,
                    serverSelectionTimeoutMS=self._timeout_ms,
                    **self._options,
                )
                self._owns_client = True
            await self._client.admin.command("ping")
        except PyMongoError as e:
            self._release_client()
            raise StoreError(f"Failed to connect to MongoDB: {e}") from e

        self._connected = True
        logger.info("Connected to MongoDB")
        return self

    def _release_client(self) -> None:
        # An injected client is kept so a later connect() reuses it.
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None
            self._owns_client = False

    async def disconnect(self) -> None:
        """Close the driver connection. Safe to call when not connected."""
        if self._client is not None and self._connected and not self._owns_client:
            self._client.close()
        self._release_client()
        self._connected = False

    async def close(self) -> None:
        await self.disconnect()

    def _ensure_connected(self) -> AsyncIOMotorClient:
        if not self._connected or self._client is None:
            raise NotConnectedError("Store is not connected. Call connect() first.")
        return self._client

    def _collection(self, identity: ClientIdentity, name: str) -> AsyncIOMotorCollection:
        client = self._ensure_connected()
        return client[identity.database_name][name]

    async def validate_credential(self, api_key: str, environment: str) -> dict[str, Any]:
        client = self._ensure_connected()
        try:
            storage = await client[self._control_database]["storages"].find_one(
                {"apiKey": api_key}
            )
        except PyMongoError as e:
            raise StoreError(str(e)) from e

        if storage is None:
            raise StoreError("Invalid API key")

        return {
            "storageId": str(storage["_id"]),
            "databaseName": f"{storage.get('name', storage['_id'])}-{environment}",
        }

    async def insert(
        self,
        identity: ClientIdentity,
        collection: str,
        documents: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, Any]:
        coll = self._collection(identity, collection)
        try:
            if isinstance(documents, list):
                result = await coll.insert_many(documents)
                return {
                    "insertedCount": len(result.inserted_ids),
                    "insertedIds": dict(enumerate(result.inserted_ids)),
                }
            result = await coll.insert_one(documents)
            return {"insertedId": result.inserted_id}
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def find(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        coll = self._collection(identity, collection)
        kwargs: dict[str, Any] = {}
        if options.get("projection"):
            kwargs["projection"] = options["projection"]
        if options.get("sort"):
            kwargs["sort"] = list(options["sort"].items())
        if options.get("skip"):
            kwargs["skip"] = options["skip"]
        if options.get("limit"):
            kwargs["limit"] = options["limit"]

        try:
            return await coll.find(filter, **kwargs).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def find_all(
        self,
        identity: ClientIdentity,
        collection: str,
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        return await self.find(identity, collection, {}, options)

    async def update(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any]:
        coll = self._collection(identity, collection)
        try:
            result = await coll.update_many(filter, update)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return {
            "matchedCount": result.matched_count,
            "modifiedCount": result.modified_count,
        }

    async def delete(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> dict[str, Any]:
        coll = self._collection(identity, collection)
        try:
            result = await coll.delete_many(filter)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return {"deletedCount": result.deleted_count}

    async def count(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> int:
        coll = self._collection(identity, collection)
        try:
            return await coll.count_documents(filter)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def aggregate(
        self,
        identity: ClientIdentity,
        collection: str,
        pipeline: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        coll = self._collection(identity, collection)
        try:
            return await coll.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def create_index(
        self,
        identity: ClientIdentity,
        collection: str,
        keys: dict[str, Any],
        options: dict[str, Any],
    ) -> str:
        coll = self._collection(identity, collection)
        try:
            return await coll.create_index(list(keys.items()), **options)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def drop_index(self, identity: ClientIdentity, collection: str, name: str) -> None:
        coll = self._collection(identity, collection)
        try:
            await coll.drop_index(name)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def list_collections(self, identity: ClientIdentity) -> list[str]:
        client = self._ensure_connected()
        try:
            return await client[identity.database_name].list_collection_names()
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def drop_collection(self, identity: ClientIdentity, collection: str) -> None:
        client = self._ensure_connected()
        try:
            await client[identity.database_name].drop_collection(collection)
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def __aenter__(self) -> MotorStore:
        """Async context manager entry."""
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit."""
        await self.disconnect()

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"MotorStore({status})"
