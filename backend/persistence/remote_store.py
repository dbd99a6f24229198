from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

import httpx


class RemoteStoreError(Exception):
    pass


class RemoteDocumentStore(Protocol):
    async def get(self, uid: str) -> dict[str, Any] | None: ...

    async def set(self, uid: str, record: dict[str, Any]) -> None: ...

    async def update(self, uid: str, fields: dict[str, Any]) -> None: ...


def _provider_error_message(response: httpx.Response) -> str:
    message = response.text.strip()
    try:
        payload = response.json()
    except Exception:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            msg = err.get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        msg = payload.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
    return message or f"HTTP {response.status_code}"


class UnconfiguredDocumentStore:
    """Stand-in used when no remote store URL is configured; every call fails over."""

    async def get(self, uid: str) -> dict[str, Any] | None:
        raise RemoteStoreError("Remote document store is not configured.")

    async def set(self, uid: str, record: dict[str, Any]) -> None:
        raise RemoteStoreError("Remote document store is not configured.")

    async def update(self, uid: str, fields: dict[str, Any]) -> None:
        raise RemoteStoreError("Remote document store is not configured.")


class HttpDocumentStore:
    """JSON document store reached over REST: ``{base_url}/users/{uid}``."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 8.0))
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _document_url(self, uid: str) -> str:
        return f"{self.base_url}/users/{quote(uid, safe='')}"

    async def _request(self, method: str, uid: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                return await client.request(
                    method,
                    self._document_url(uid),
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.TimeoutException as exc:
            raise RemoteStoreError("Remote document store timed out.") from exc
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"Remote document store unreachable: {exc}") from exc

    async def get(self, uid: str) -> dict[str, Any] | None:
        response = await self._request("GET", uid)
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RemoteStoreError(_provider_error_message(response))
        payload = response.json()
        if not isinstance(payload, dict):
            raise RemoteStoreError("Remote document store returned a non-object document.")
        return payload

    async def set(self, uid: str, record: dict[str, Any]) -> None:
        response = await self._request("PUT", uid, record)
        if response.status_code >= 400:
            raise RemoteStoreError(_provider_error_message(response))

    async def update(self, uid: str, fields: dict[str, Any]) -> None:
        # PATCH on a missing document is an error, same as a partial update upstream.
        response = await self._request("PATCH", uid, fields)
        if response.status_code >= 400:
            raise RemoteStoreError(_provider_error_message(response))
