"""
Type definitions for the reklog-storage SDK.

Provides result types for insert, update, and delete operations, the
validated client identity, and the exception hierarchy.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence


class ValidationState(str, enum.Enum):
    """Lifecycle of the one-time API key handshake."""

    PENDING = "pending"
    VALIDATED = "validated"
    FAILED = "failed"


@dataclass(frozen=True)
class ClientIdentity:
    """
    Identity resolved by a successful API key handshake.

    Passed to every backing store call so requests are addressed to the
    resolved storage and logical database.

    Attributes:
        api_key: The credential that was validated.
        environment: Environment tag the database was resolved for.
        storage_id: Identifier of the storage owning the key.
        database_name: Logical database selected for the environment.
    """

    api_key: str = field(repr=False)
    environment: str
    storage_id: str
    database_name: str


@dataclass
class InsertOneResult:
    """
    Result of a single-document insert.

    Attributes:
        inserted_id: The _id assigned to the inserted document.
        acknowledged: Whether the write was acknowledged.
    """

    inserted_id: Any
    acknowledged: bool = True


@dataclass
class InsertManyResult:
    """
    Result of a multi-document insert.

    Attributes:
        inserted_count: Number of documents inserted.
        inserted_ids: Mapping of input position to assigned _id.
        acknowledged: Whether the write was acknowledged.
    """

    inserted_count: int = 0
    inserted_ids: dict[int, Any] = field(default_factory=dict)
    acknowledged: bool = True


@dataclass
class UpdateResult:
    """
    Result of an update operation.

    Attributes:
        matched_count: Number of documents matched.
        modified_count: Number of documents modified.
        acknowledged: Whether the write was acknowledged.
    """

    matched_count: int = 0
    modified_count: int = 0
    acknowledged: bool = True

    @property
    def raw_result(self) -> dict[str, Any]:
        """Return the result in the store's wire shape."""
        return {
            "matchedCount": self.matched_count,
            "modifiedCount": self.modified_count,
        }


@dataclass
class DeleteResult:
    """
    Result of a delete operation.

    Attributes:
        deleted_count: Number of documents deleted.
        acknowledged: Whether the write was acknowledged.
    """

    deleted_count: int = 0
    acknowledged: bool = True

    @property
    def raw_result(self) -> dict[str, Any]:
        """Return the result in the store's wire shape."""
        return {"deletedCount": self.deleted_count}


# Type aliases for clarity
Document = Mapping[str, Any]
Filter = Mapping[str, Any]
Update = Mapping[str, Any]
Pipeline = Sequence[Mapping[str, Any]]
Projection = Mapping[str, Any] | Sequence[str] | None
Sort = Mapping[str, int] | Sequence[tuple[str, int]] | str | None


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(StorageError):
    """Error raised when the client is constructed with invalid settings."""

    pass


class ValidationError(StorageError):
    """
    Error raised when the API key handshake fails.

    Terminal for the client instance: every later operation raises the
    same error.
    """

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message, code)
        self.reason = reason if reason is not None else message


class StoreError(StorageError):
    """Error raised when the backing store rejects or fails an operation."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, code)
        self.status_code = status_code


class StoreTimeoutError(StoreError):
    """Error raised when a backing store request exceeds its deadline."""

    pass


class NotConnectedError(StorageError):
    """Error raised when a driver-backed store is used while disconnected."""

    pass
