"""HTTP client for the Remote Entry Service.

Wraps the journal server's REST API:

- ``POST /api/entries`` creates an entry
- ``PATCH /api/entries/{id}`` updates one
- ``DELETE /api/entries/{id}`` deletes one
- ``GET /api/entries?userId={id}`` lists an owner's entries

Every failure (transport error, timeout, non-2xx status, unreadable body)
surfaces as ServiceFault.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from .errors import ServiceFault
from .models import Entry, editable_payload

logger = logging.getLogger(__name__)

ENTRIES_PATH = "/api/entries"


class EntryService(Protocol):
    """Operations the sync engine needs from the server."""

    async def create_entry(self, data: dict[str, Any]) -> Entry: ...

    async def update_entry(self, entry_id: str, data: dict[str, Any]) -> Entry: ...

    async def delete_entry(self, entry_id: str) -> None: ...

    async def list_entries(self, user_id: str) -> list[Entry]: ...


class RemoteEntryService:
    """
    Remote Entry Service backed by httpx.AsyncClient.

    Example:
        >>> async with RemoteEntryService("https://journal.example.com", token="...") as remote:
        ...     entries = await remote.list_entries("user-1")
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        cookie: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Server origin, e.g. "https://journal.example.com"
            token: Bearer token sent in the Authorization header
            cookie: Session cookie header value
            timeout: Per-request timeout in seconds
            client: Preconfigured client (tests pass one with a MockTransport)
        """
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if cookie:
            headers["Cookie"] = cookie
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def __aenter__(self) -> RemoteEntryService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Send one request; no retries."""
        try:
            response = await self._client.request(method, url, json=json, params=params)
        except httpx.TimeoutException as e:
            raise ServiceFault(f"{method} {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise ServiceFault(f"{method} {url} failed: {e}") from e

        if response.is_error:
            raise ServiceFault(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ServiceFault(
                f"Unreadable response body from {response.request.url}",
                status_code=response.status_code,
            ) from e

    def _decode_entry(self, response: httpx.Response) -> Entry:
        data = self._decode(response)
        try:
            return Entry.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceFault(f"Malformed entry in response: {e}") from e

    async def create_entry(self, data: dict[str, Any]) -> Entry:
        """Create an entry; returns it with its server-assigned ID."""
        response = await self._request("POST", ENTRIES_PATH, json=editable_payload(data))
        return self._decode_entry(response)

    async def update_entry(self, entry_id: str, data: dict[str, Any]) -> Entry:
        """Apply partial changes to an entry; returns the updated entry."""
        response = await self._request(
            "PATCH", f"{ENTRIES_PATH}/{entry_id}", json=editable_payload(data)
        )
        return self._decode_entry(response)

    async def delete_entry(self, entry_id: str) -> None:
        await self._request("DELETE", f"{ENTRIES_PATH}/{entry_id}")

    async def list_entries(self, user_id: str) -> list[Entry]:
        """All of the owner's entries as the server currently has them."""
        response = await self._request("GET", ENTRIES_PATH, params={"userId": user_id})
        data = self._decode(response)
        if not isinstance(data, list):
            raise ServiceFault(f"Expected a list of entries, got {type(data).__name__}")
        try:
            return [Entry.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise ServiceFault(f"Malformed entry in response: {e}") from e
