"""
Collection - a storage client bound to one collection name.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .client import RekLogStorage
    from .cursor import Cursor
    from .types import (
        DeleteResult,
        Document,
        Filter,
        InsertManyResult,
        InsertOneResult,
        Pipeline,
        Projection,
        Sort,
        Update,
        UpdateResult,
    )

__all__ = ["Collection"]


class Collection:
    """
    Handle for one collection of a storage client.

    Every method forwards to the client, so operations are gated on the
    client's API key validation.

    Example:
        users = storage["users"]

        await users.insert({"name": "Alice"})
        alice = await users.find_one({"name": "Alice"})
        await users.update({"name": "Alice"}, {"$set": {"status": "vip"}})
        await users.delete({"name": "Alice"})
    """

    __slots__ = ("_client", "_name")

    def __init__(self, client: RekLogStorage, name: str) -> None:
        self._client = client
        self._name = name

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._name

    @property
    def client(self) -> RekLogStorage:
        """Get the parent client."""
        return self._client

    async def insert(
        self,
        documents: Document | Sequence[Document],
    ) -> InsertOneResult | InsertManyResult:
        return await self._client.insert(self._name, documents)

    async def get(self, query: Filter | None = None, **options: Any) -> list[dict[str, Any]]:
        return await self._client.get(self._name, query, **options)

    async def find_one(
        self,
        query: Filter | None = None,
        *,
        projection: Projection = None,
    ) -> dict[str, Any] | None:
        return await self._client.find_one(self._name, query, projection=projection)

    def find(self, query: Filter | None = None) -> Cursor:
        return self._client.find(self._name, query)

    async def update(self, query: Filter, update: Update) -> UpdateResult:
        return await self._client.update(self._name, query, update)

    async def delete(self, query: Filter) -> DeleteResult:
        return await self._client.delete(self._name, query)

    async def count(self, query: Filter | None = None) -> int:
        return await self._client.count(self._name, query)

    async def aggregate(self, pipeline: Pipeline) -> list[dict[str, Any]]:
        return await self._client.aggregate(self._name, pipeline)

    async def create_index(self, keys: Sort, **options: Any) -> str:
        return await self._client.create_index(self._name, keys, **options)

    async def drop_index(self, name: str) -> None:
        await self._client.drop_index(self._name, name)

    async def drop(self) -> None:
        """Drop the collection."""
        await self._client.drop_collection(self._name)

    def __repr__(self) -> str:
        return f"Collection({self._name!r})"
