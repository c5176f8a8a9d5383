"""
HttpStore - backing store for the hosted storage API.

Each operation is an independent JSON POST carrying the API key. The API
answers with an envelope ``{"success": bool, "data": ..., "message": str}``.
"""

from __future__ import annotations

import datetime
import decimal
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any

import httpx

from .config import StorageSettings
from .types import StoreError, StoreTimeoutError

if TYPE_CHECKING:
    from .types import ClientIdentity

__all__ = ["HttpStore"]

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, decimal.Decimal)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class HttpStore:
    """
    Backing store that talks to the storage API over HTTP.

    Example:
        store = HttpStore(StorageSettings(endpoint="http://localhost:3000/api"))
        client = RekLogStorage(api_key, store=store)
    """

    __slots__ = ("_settings", "_http", "_closed")

    def __init__(
        self,
        settings: StorageSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            settings: Endpoint and timeout settings.
            transport: Optional httpx transport, e.g. httpx.MockTransport.
        """
        self._settings = settings or StorageSettings()
        self._http = httpx.AsyncClient(
            base_url=self._settings.endpoint + "/",
            timeout=self._settings.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self._closed = False

    @property
    def endpoint(self) -> str:
        """Get the API base URL."""
        return self._settings.endpoint

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        rejected_message: str | None = None,
    ) -> Any:
        """
        POST a JSON payload and unwrap the response envelope.

        Args:
            path: Path relative to the endpoint.
            payload: JSON body.
            rejected_message: Error message for ``success: false`` replies
                that carry no message of their own.

        Returns:
            The envelope's ``data`` member.

        Raises:
            StoreTimeoutError: If the request times out.
            StoreError: On transport failure, an error status, or
                ``success: false``.
        """
        if self._closed:
            raise StoreError("Store is closed")

        try:
            body = json.dumps(payload, default=_json_default)
        except (TypeError, ValueError) as e:
            raise StoreError(f"Payload is not JSON serializable: {e}") from e

        logger.debug("POST %s (collection=%s)", path, payload.get("collection"))
        try:
            response = await self._http.post(path, content=body)
        except httpx.TimeoutException as e:
            raise StoreTimeoutError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise StoreError(str(e) or type(e).__name__) from e

        try:
            envelope = response.json()
        except ValueError:
            envelope = None

        if not isinstance(envelope, dict):
            if response.is_error:
                raise StoreError(
                    f"Request failed with status code {response.status_code}",
                    status_code=response.status_code,
                )
            raise StoreError(
                f"Malformed response from {path}", status_code=response.status_code
            )

        if response.is_error or not envelope.get("success"):
            message = envelope.get("message") or (
                f"Request failed with status code {response.status_code}"
                if response.is_error
                else rejected_message or f"Request to {path} was not successful"
            )
            raise StoreError(message, status_code=response.status_code)

        return envelope.get("data")

    async def _post_data(
        self,
        identity: ClientIdentity,
        path: str,
        **fields: Any,
    ) -> Any:
        payload = {
            "apiKey": identity.api_key,
            "environment": identity.environment,
            **fields,
        }
        return await self._post(path, payload)

    async def validate_credential(self, api_key: str, environment: str) -> dict[str, Any]:
        data = await self._post(
            "storages/validate-key",
            {"apiKey": api_key, "environment": environment},
            rejected_message="Invalid API key",
        )
        if not isinstance(data, dict) or "databaseName" not in data:
            raise StoreError("Validation response did not include a database name")
        return data

    async def insert(
        self,
        identity: ClientIdentity,
        collection: str,
        documents: dict[str, Any] | list[dict[str, Any]],
    ) -> dict[str, Any]:
        data = await self._post_data(
            identity, "storages/data/insert", collection=collection, documents=documents
        )
        return data if isinstance(data, dict) else {}

    async def find(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        data = await self._post_data(
            identity,
            "storages/data/find",
            collection=collection,
            query=filter,
            options=options,
        )
        documents = data.get("documents") if isinstance(data, dict) else data
        return documents if isinstance(documents, list) else []

    async def find_all(
        self,
        identity: ClientIdentity,
        collection: str,
        options: dict[str, Any],
    ) -> list[dict[str, Any]]:
        data = await self._post_data(
            identity, "storages/data/findAll", collection=collection, options=options
        )
        documents = data.get("documents") if isinstance(data, dict) else data
        return documents if isinstance(documents, list) else []

    async def update(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
        update: dict[str, Any],
    ) -> dict[str, Any]:
        data = await self._post_data(
            identity,
            "storages/data/update",
            collection=collection,
            query=filter,
            update=update,
        )
        return data if isinstance(data, dict) else {}

    async def delete(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> dict[str, Any]:
        data = await self._post_data(
            identity, "storages/data/delete", collection=collection, query=filter
        )
        return data if isinstance(data, dict) else {}

    async def count(
        self,
        identity: ClientIdentity,
        collection: str,
        filter: dict[str, Any],
    ) -> int:
        data = await self._post_data(
            identity, "storages/data/count", collection=collection, query=filter
        )
        count = data.get("count") if isinstance(data, dict) else data
        return count if isinstance(count, int) else 0

    async def aggregate(
        self,
        identity: ClientIdentity,
        collection: str,
        pipeline: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        data = await self._post_data(
            identity, "storages/data/aggregate", collection=collection, pipeline=pipeline
        )
        documents = data.get("documents") if isinstance(data, dict) else data
        return documents if isinstance(documents, list) else []

    async def create_index(
        self,
        identity: ClientIdentity,
        collection: str,
        keys: dict[str, Any],
        options: dict[str, Any],
    ) -> str:
        data = await self._post_data(
            identity,
            "storages/indexes/create",
            collection=collection,
            keys=keys,
            options=options,
        )
        name = data.get("name") if isinstance(data, dict) else data
        return name if isinstance(name, str) else ""

    async def drop_index(self, identity: ClientIdentity, collection: str, name: str) -> None:
        await self._post_data(
            identity, "storages/indexes/drop", collection=collection, name=name
        )

    async def list_collections(self, identity: ClientIdentity) -> list[str]:
        data = await self._post_data(identity, "storages/collections/list")
        names = data.get("collections") if isinstance(data, dict) else data
        return names if isinstance(names, list) else []

    async def drop_collection(self, identity: ClientIdentity, collection: str) -> None:
        await self._post_data(
            identity, "storages/collections/drop", collection=collection
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        self._closed = True
        await self._http.aclose()

    def __repr__(self) -> str:
        return f"HttpStore({self._settings.endpoint!r})"
