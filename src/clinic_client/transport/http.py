"""httpx-backed transport.

Classes
-------
- HttpxTransport  — issues requests through a shared ``httpx.AsyncClient``
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from clinic_client.transport.base import (
    Transport,
    TransportError,
    TransportErrorCode,
    TransportRequest,
    TransportResponse,
)

logger = logging.getLogger(__name__)


class HttpxTransport(Transport):
    """Send requests with ``httpx.AsyncClient``.

    Error statuses are returned as responses; only failures where no
    response arrived are raised, mapped to ``TransportError``.  A success
    status with a body that is not JSON did not come from the backend and
    is raised as a connection failure.

    Parameters
    ----------
    base_url:
        Root URL all request paths are joined to.
    headers:
        Headers sent with every request.
    client:
        Optional pre-built client (e.g. one using ``httpx.MockTransport``).
        When given, ``base_url`` and ``headers`` are ignored.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers or {})

    async def send(self, request: TransportRequest) -> TransportResponse:
        """Issue ``request`` and return the status with the decoded body."""
        try:
            response = await self._client.request(
                request.method,
                request.path,
                headers=request.headers,
                json=request.body,
                params=request.params or None,
                timeout=request.timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(TransportErrorCode.TIMEOUT, str(exc)) from exc
        except httpx.TransportError as exc:
            raise TransportError(TransportErrorCode.CONNECTION, str(exc)) from exc

        logger.debug("HttpxTransport: %s %s -> %d", request.method, request.path, response.status_code)
        try:
            body = _decode(response)
        except ValueError as exc:
            if response.status_code < 400:
                # A captive portal or proxy answered instead of the backend.
                raise TransportError(
                    TransportErrorCode.CONNECTION, "success response is not JSON"
                ) from exc
            body = {"detail": response.text}
        return TransportResponse(status=response.status_code, body=body)

    async def aclose(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"HttpxTransport(base_url={str(self._client.base_url)!r})"


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    return response.json()


__all__ = ["HttpxTransport"]
