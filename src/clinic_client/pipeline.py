"""Request pipeline: the single entry point for every backend call.

``RequestPipeline.call`` wraps the transport with token attachment,
failure classification, a single refresh-and-retry on 401 and the two
offline fallbacks:

- cache-eligible reads serve the last good result when no response
  arrives;
- queue-eligible writes are recorded in the offline queue and answered
  with a ``QueuedResult`` placeholder.

Nothing is retried more than once, and only because of a 401.

Classes
-------
- CallPolicy       — which offline fallback, if any, applies to a call
- RequestSpec      — description of one call
- QueuedResult     — placeholder returned for a queued write
- RequestPipeline  — executes ``RequestSpec`` objects
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from clinic_client.errors import ClassifiedError, classify_response, classify_transport_error
from clinic_client.offline.cache import ReadThroughCache
from clinic_client.offline.queue import OfflineQueue
from clinic_client.session.manager import SessionManager
from clinic_client.storage.base import KeyValueStore
from clinic_client.transport.base import (
    Transport,
    TransportError,
    TransportErrorCode,
    TransportRequest,
    TransportResponse,
)

logger = logging.getLogger(__name__)


class CallPolicy(str, Enum):
    """Offline behaviour of a call when no response arrives."""

    NONE = "none"
    CACHE_READ = "cache_read"
    QUEUE_WRITE = "queue_write"


@dataclass(frozen=True)
class RequestSpec:
    """One backend call.

    Parameters
    ----------
    path:
        Path relative to the API base URL.
    method:
        HTTP verb.
    body:
        JSON body, if any.
    params:
        Query-string parameters.
    timeout:
        Per-call timeout override in seconds.
    policy:
        Offline fallback to apply.
    authenticated:
        Attach the bearer token and refresh on 401.  False for login,
        register and similar anonymous calls.
    cache_key:
        Logical cache key for ``CACHE_READ`` calls.  Defaults to ``path``.
    queue_payload:
        What to record for ``QUEUE_WRITE`` calls.  Defaults to ``body``.
    cancel:
        Setting this event cancels the in-flight transport call.
    """

    path: str
    method: str = "GET"
    body: Any = None
    params: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    policy: CallPolicy = CallPolicy.NONE
    authenticated: bool = True
    cache_key: str | None = None
    queue_payload: dict[str, Any] | None = None
    cancel: asyncio.Event | None = field(default=None, compare=False)

    @property
    def effective_cache_key(self) -> str:
        return self.cache_key or self.path


class QueuedResult(BaseModel):
    """Synthetic success returned when a write was queued offline."""

    queued: bool = True
    payload: dict[str, Any]
    enqueued_at: datetime


class RequestPipeline:
    """Execute calls with auth, classification, retry and offline fallback.

    Parameters
    ----------
    transport:
        Transport issuing the HTTP requests.
    session:
        Owner of the token pair.
    cache:
        Read-through cache for ``CACHE_READ`` calls.
    queue:
        Offline queue for ``QUEUE_WRITE`` calls.
    timeout:
        Default per-call timeout in seconds.
    headers:
        Headers sent with every request.
    """

    def __init__(
        self,
        transport: Transport,
        session: SessionManager,
        *,
        cache: ReadThroughCache | None = None,
        queue: OfflineQueue | None = None,
        timeout: float = 45.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._transport = transport
        self._session = session
        self._cache = cache
        self._queue = queue
        self._timeout = timeout
        self._headers = dict(headers or {})

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def cache(self) -> ReadThroughCache | None:
        return self._cache

    @property
    def queue(self) -> OfflineQueue | None:
        return self._queue

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def call(self, spec: RequestSpec) -> Any:
        """Execute ``spec`` and return the parsed response body.

        Returns
        -------
        Any
            The response body, the cached value of a failed cache-eligible
            read, or a ``QueuedResult`` for a queued write.

        Raises
        ------
        ClassifiedError
            For every failure no fallback absorbed.
        ValueError
            If ``spec`` asks for a fallback this pipeline was built without.
        """
        if spec.policy is CallPolicy.CACHE_READ and self._cache is None:
            raise ValueError("Cache-eligible calls need a ReadThroughCache.")
        if spec.policy is CallPolicy.QUEUE_WRITE and self._queue is None:
            raise ValueError("Queue-eligible calls need an OfflineQueue.")

        try:
            body = await self.call_with_auth_and_retry(spec)
        except ClassifiedError as error:
            if not error.is_connectivity:
                raise
            if spec.policy is CallPolicy.CACHE_READ:
                return await self._serve_cached(spec, error)
            if spec.policy is CallPolicy.QUEUE_WRITE:
                return await self.enqueue(spec.queue_payload or spec.body or {})
            raise

        if spec.policy is CallPolicy.CACHE_READ:
            await self._remember(spec, body)
        return body

    async def call_with_auth_and_retry(self, spec: RequestSpec) -> Any:
        """Issue ``spec`` with the current token, refreshing once on 401.

        No offline fallback is applied here.
        """
        response, sent_token = await self._send(spec)
        refreshed = False
        if response.status == 401 and spec.authenticated:
            logger.debug("RequestPipeline: 401 on %s %s, refreshing", spec.method, spec.path)
            await self._session.refresh(stale_token=sent_token)
            refreshed = True
            response, _ = await self._send(spec)

        if response.ok:
            return response.body
        raise classify_response(response.status, response.body, refresh_attempted=refreshed)

    async def enqueue(self, payload: dict[str, Any]) -> QueuedResult:
        """Record ``payload`` in the offline queue and return a placeholder."""
        if self._queue is None:
            raise ValueError("Queue-eligible calls need an OfflineQueue.")
        entry = await self._queue.enqueue(payload)
        return QueuedResult(payload=entry.payload, enqueued_at=entry.enqueued_at)

    async def aclose(self) -> None:
        """Close the transport and every distinct backing store once."""
        stores: list[KeyValueStore] = [self._session.credentials]
        for extra in (self._cache, self._queue):
            if extra is not None and all(extra.store is not store for store in stores):
                stores.append(extra.store)
        await self._transport.aclose()
        for store in stores:
            await store.aclose()
        logger.debug("RequestPipeline: closed transport and %d store(s)", len(stores))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _send(self, spec: RequestSpec) -> tuple[TransportResponse, str | None]:
        headers = dict(self._headers)
        token = await self._session.attach_auth(headers) if spec.authenticated else None
        timeout = spec.timeout or self._timeout
        request = TransportRequest(
            method=spec.method.upper(),
            path=spec.path,
            headers=headers,
            body=spec.body,
            params=spec.params,
            timeout=timeout,
        )
        try:
            response = await self._dispatch(request, timeout, spec.cancel)
        except TransportError as exc:
            logger.debug(
                "RequestPipeline: no response for %s %s (%s)",
                request.method,
                request.path,
                exc.code.value,
            )
            raise classify_transport_error(exc) from exc
        return response, token

    async def _dispatch(
        self,
        request: TransportRequest,
        timeout: float,
        cancel: asyncio.Event | None,
    ) -> TransportResponse:
        if cancel is None:
            try:
                return await asyncio.wait_for(self._transport.send(request), timeout)
            except asyncio.TimeoutError as exc:
                raise TransportError(TransportErrorCode.TIMEOUT, f"no response in {timeout}s") from exc

        if cancel.is_set():
            raise TransportError(TransportErrorCode.CANCELLED, "cancelled before sending")
        send_task = asyncio.ensure_future(self._transport.send(request))
        cancel_task = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {send_task, cancel_task},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (send_task, cancel_task):
                if not task.done():
                    task.cancel()

        if send_task in done:
            return send_task.result()
        if cancel_task in done:
            raise TransportError(TransportErrorCode.CANCELLED, "cancelled by caller")
        raise TransportError(TransportErrorCode.TIMEOUT, f"no response in {timeout}s")

    async def _serve_cached(self, spec: RequestSpec, error: ClassifiedError) -> Any:
        assert self._cache is not None
        entry = await self._cache.read(spec.effective_cache_key)
        if entry is None:
            raise error
        logger.warning(
            "RequestPipeline: serving cached %r after connectivity failure",
            spec.effective_cache_key,
        )
        return entry.value

    async def _remember(self, spec: RequestSpec, body: Any) -> None:
        assert self._cache is not None
        try:
            await self._cache.write(spec.effective_cache_key, body)
        except Exception:  # noqa: BLE001
            logger.warning(
                "RequestPipeline: could not cache %r", spec.effective_cache_key, exc_info=True
            )

    def __repr__(self) -> str:
        return f"RequestPipeline(transport={self._transport!r}, timeout={self._timeout!r})"


__all__ = ["CallPolicy", "QueuedResult", "RequestPipeline", "RequestSpec"]
