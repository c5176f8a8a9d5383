"""
BackingStore - the interface storage clients forward operations to.

A backing store is any transport (HTTP API, database driver) that can
validate an API key and execute document operations. Stores return the
raw payload of each operation; the client reshapes it into result types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .types import ClientIdentity

__all__ = ["BackingStore"]


@runtime_checkable
class BackingStore(Protocol):
    """
    Collaborator interface for storage clients.

    Every operation except validate_credential receives the ClientIdentity
    produced by the handshake. Failures are raised as StoreError (or
    NotConnectedError for driver-backed stores).
    """

    async def validate_credential(self, api_key: str, environment: str) -> dict[str, Any]:
        """Exchange an API key for ``{"storageId", "databaseName"}``."""
        ...

    async def insert(
        self,
        identity: ClientIdentity,
        collection: str,
        documents: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Insert one document or a list of documents.

        Returns ``{"insertedId"}`` for a single document, or
        ``{"insertedCount", "insertedIds"}`` for a list.
        """
        ...

    async def find(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Return documents matching filter with limit/skip/sort/projection options."""
        ...

    async def find_all(
        self,
        identity: ClientIdentity,
        collection: str,
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Return every document of a collection with the same options as find()."""
        ...

    async def update(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any]:
        """Update matching documents. Returns ``{"matchedCount", "modifiedCount"}``."""
        ...

    async def delete(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> dict[str, Any]:
        """Delete matching documents. Returns ``{"deletedCount"}``."""
        ...

    async def count(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> int:
        ...

    async def aggregate(
        self,
        identity: ClientIdentity,
        collection: str,
        pipeline: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        ...

    async def create_index(
        self,
        identity: ClientIdentity,
        collection: str,
        keys: dict[str, Any],
        options: dict[str, Any],
    ) -> str:
        ...

    async def drop_index(self, identity: ClientIdentity, collection: str, name: str) -> None:
        ...

    async def list_collections(self, identity: ClientIdentity) -> list[str]:
        ...

    async def drop_collection(self, identity: ClientIdentity, collection: str) -> None:
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...
