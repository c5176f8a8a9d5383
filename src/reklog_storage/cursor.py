"""
Cursor - Async cursor for iterating over query results.

A cursor collects sort, limit, skip and projection settings and runs a
single gated find when it is first read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, AsyncIterator

if TYPE_CHECKING:
    from .client import RekLogStorage
    from .types import Filter, Projection

__all__ = ["Cursor"]


class Cursor:
    """
    Async cursor for iterating over query results.

    Example:
        async for doc in storage.find("users", {"status": "active"}):
            print(doc)

        # With chaining
        cursor = storage.find("users").sort("created_at", -1).limit(10)
        docs = await cursor.to_list()
    """

    __slots__ = (
        "_client",
        "_collection",
        "_filter",
        "_projection",
        "_sort",
        "_limit",
        "_skip",
        "_results",
        "_exhausted",
        "_position",
    )

    def __init__(
        self,
        client: RekLogStorage,
        collection: str,
        filter: Filter | None = None,
        projection: Projection = None,
    ) -> None:
        """
        Initialize a cursor.

        Args:
            client: The storage client that runs the query.
            collection: Collection name.
            filter: Query filter.
            projection: Fields to include/exclude.
        """
        self._client = client
        self._collection = collection
        self._filter: Filter = filter or {}
        self._projection: Projection = projection
        self._sort: dict[str, int] = {}
        self._limit: int = 0
        self._skip: int = 0
        self._results: list[dict[str, Any]] | None = None
        self._exhausted: bool = False
        self._position: int = 0

    def _check_unused(self) -> None:
        if self._results is not None:
            raise RuntimeError("Cannot modify a cursor after it has been read")

    def sort(self, key_or_list: str | list[tuple[str, int]], direction: int = 1) -> Cursor:
        """
        Sort the results.

        Args:
            key_or_list: Field name or list of (field, direction) tuples.
            direction: Sort direction (1 for ascending, -1 for descending).
                       Only used if key_or_list is a string.

        Returns:
            Self for chaining.
        """
        self._check_unused()
        if isinstance(key_or_list, str):
            self._sort[key_or_list] = direction
        else:
            self._sort.update(key_or_list)
        return self

    def limit(self, limit: int) -> Cursor:
        """Limit the number of results. Returns self for chaining."""
        self._check_unused()
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self._limit = limit
        return self

    def skip(self, skip: int) -> Cursor:
        """Skip the first N results. Returns self for chaining."""
        self._check_unused()
        if skip < 0:
            raise ValueError("skip must be non-negative")
        self._skip = skip
        return self

    def project(self, projection: Projection) -> Cursor:
        """Set field projection. Returns self for chaining."""
        self._check_unused()
        self._projection = projection
        return self

    async def _execute(self) -> list[dict[str, Any]]:
        if self._results is None:
            self._results = await self._client.get(
                self._collection,
                self._filter,
                limit=self._limit,
                skip=self._skip,
                sort=self._sort or None,
                projection=self._projection,
            )
        return self._results

    async def to_list(self, length: int | None = None) -> list[dict[str, Any]]:
        """
        Convert cursor to a list.

        Args:
            length: Maximum number of documents to return.
                    If None, returns all documents.
        """
        results = await self._execute()
        if length is not None:
            return results[:length]
        return list(results)

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        """Return async iterator."""
        return self

    async def __anext__(self) -> dict[str, Any]:
        results = await self._execute()

        if self._position >= len(results):
            self._exhausted = True
            raise StopAsyncIteration

        doc = results[self._position]
        self._position += 1
        return doc

    def clone(self) -> Cursor:
        """Return an unread cursor with the same query parameters."""
        cursor = Cursor(
            self._client,
            self._collection,
            self._filter,
            self._projection,
        )
        cursor._sort = dict(self._sort)
        cursor._limit = self._limit
        cursor._skip = self._skip
        return cursor

    @property
    def alive(self) -> bool:
        """Check if the cursor can still yield documents."""
        return not self._exhausted

    def rewind(self) -> Cursor:
        """Rewind the cursor to the beginning of the fetched results."""
        self._position = 0
        self._exhausted = False
        return self
