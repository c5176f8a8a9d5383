"""
reklog-storage - async document storage client with API key validation.

This package provides an async client for the RekLog storage API with
support for:
- Lazy API key validation shared by all operations
- CRUD operations (insert, get, update, delete)
- Counting, aggregation pipelines and index management
- Environment tags selecting a logical database per API key
- An HTTP backend and a direct MongoDB backend (Motor)

Example usage:
    import os

    from reklog_storage import RekLogStorage

    async def main():
        # Validation starts in the background
        storage = RekLogStorage(os.environ["REKLOG_API_KEY"], environment="production")

        # Insert documents
        result = await storage.insert("users", {"name": "Alice", "status": "active"})
        print(result.inserted_id)

        # Query documents
        users = await storage.get("users", {"status": "active"}, sort={"name": 1}, limit=5)

        # Update documents
        await storage.update("users", {"name": "Alice"}, {"$set": {"status": "vip"}})

        # Delete documents
        await storage.delete("users", {"status": "inactive"})

        await storage.close()

    import asyncio
    asyncio.run(main())
"""

from __future__ import annotations

__version__ = "0.1.0"

from .client import RekLogStorage
from .collection import Collection
from .config import StorageSettings
from .cursor import Cursor
from .http_store import HttpStore
from .motor_store import MotorStore
from .store import BackingStore
from .types import (
    ClientIdentity,
    ConfigurationError,
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    NotConnectedError,
    StorageError,
    StoreError,
    StoreTimeoutError,
    UpdateResult,
    ValidationError,
    ValidationState,
)

__all__ = [
    # Main classes
    "RekLogStorage",
    "Collection",
    "Cursor",
    "StorageSettings",
    # Backing stores
    "BackingStore",
    "HttpStore",
    "MotorStore",
    # Identity and state
    "ClientIdentity",
    "ValidationState",
    # Result types
    "InsertOneResult",
    "InsertManyResult",
    "UpdateResult",
    "DeleteResult",
    # Exceptions
    "StorageError",
    "ConfigurationError",
    "ValidationError",
    "StoreError",
    "StoreTimeoutError",
    "NotConnectedError",
    # Version
    "__version__",
]
