"""Session lifecycle management.

Provides ``SessionManager``, the only component allowed to read or write
the token pair.  All other components go through ``attach_auth``,
``start``, ``refresh`` and ``clear``.

Classes
-------
- SessionManager  — token owner with single-flight refresh
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from clinic_client.errors import SESSION_EXPIRED_MESSAGE, ClassifiedError, ErrorKind
from clinic_client.session.state import Session, SessionStatus
from clinic_client.storage.base import KeyValueStore
from clinic_client.transport.base import (
    Transport,
    TransportError,
    TransportRequest,
)

logger = logging.getLogger(__name__)


class SessionManager:
    """Own the current token pair and mediate refresh.

    Concurrent ``refresh`` calls are coalesced: exactly one network refresh
    is in flight at a time and every caller receives its outcome.

    Parameters
    ----------
    credentials:
        Persistent store holding the token pair.
    transport:
        Transport used for the refresh call.  The refresh bypasses the
        request pipeline so it can never recurse into 401 handling.
    refresh_path:
        Backend path exchanging a refresh token for a new pair.
    access_token_key:
        Store key for the access token.
    refresh_token_key:
        Store key for the refresh token.
    timeout:
        Timeout in seconds for the refresh call.
    headers:
        Extra headers sent with the refresh call.
    """

    def __init__(
        self,
        credentials: KeyValueStore,
        transport: Transport,
        *,
        refresh_path: str = "/auth/refresh",
        access_token_key: str = "access_token",
        refresh_token_key: str = "refresh_token",
        timeout: float = 45.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._credentials = credentials
        self._transport = transport
        self._refresh_path = refresh_path
        self._access_key = access_token_key
        self._refresh_key = refresh_token_key
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._inflight: asyncio.Task[Session] | None = None
        self._refresh_count = 0
        # Bumped by start() and clear(); a refresh that outlives its generation is dropped.
        self._generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> KeyValueStore:
        return self._credentials

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None

    @property
    def refresh_count(self) -> int:
        """Number of refresh network calls issued so far."""
        return self._refresh_count

    async def status(self) -> SessionStatus:
        """Return the current position in the session state machine."""
        if self._inflight is not None:
            return SessionStatus.REFRESHING
        if await self.current() is None:
            return SessionStatus.ANONYMOUS
        return SessionStatus.AUTHENTICATED

    async def current(self) -> Session | None:
        """Return the persisted token pair, or None when logged out."""
        access = await self._credentials.get(self._access_key)
        refresh = await self._credentials.get(self._refresh_key)
        if not access or not refresh:
            return None
        return Session(access_token=access, refresh_token=refresh)

    async def access_token(self) -> str | None:
        return await self._credentials.get(self._access_key)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def start(self, session: Session) -> Session:
        """Persist a freshly issued pair (login, register or refresh)."""
        self._generation += 1
        await self._credentials.set_many(
            [
                (self._access_key, session.access_token),
                (self._refresh_key, session.refresh_token),
            ]
        )
        logger.debug("SessionManager: session stored")
        return session

    async def clear(self) -> None:
        """Remove both tokens.  Idempotent.

        A refresh still in flight is not cancelled, but the pair it returns
        is discarded and its callers receive an auth failure.
        """
        self._generation += 1
        await self._credentials.remove_many([self._access_key, self._refresh_key])
        logger.debug("SessionManager: session cleared")

    async def attach_auth(self, headers: dict[str, str]) -> str | None:
        """Inject the current access token as a bearer credential.

        No-op when no token is stored.

        Returns
        -------
        str | None
            The token that was attached, so callers can later tell whether
            a 401 was caused by a token that has since been rotated.
        """
        token = await self.access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return token

    async def refresh(self, stale_token: str | None = None) -> Session:
        """Exchange the refresh token for a new pair.

        Parameters
        ----------
        stale_token:
            The access token the caller's rejected request carried.  If the
            store already holds a different token, a previous refresh
            rotated the pair and it is returned without a network call.

        Returns
        -------
        Session
            The new (or already rotated) pair.

        Raises
        ------
        ClassifiedError
            ``ErrorKind.AUTH`` when the refresh failed.  The session has
            been cleared; every coalesced caller receives the same error.
        """
        if self._inflight is None and stale_token is not None:
            current = await self.current()
            if current is not None and current.access_token != stale_token:
                logger.debug("SessionManager: token already rotated, skipping refresh")
                return current

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh_once())
            self._inflight.add_done_callback(self._refresh_done)
        else:
            logger.debug("SessionManager: joining in-flight refresh")
        return await asyncio.shield(self._inflight)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refresh_done(self, task: asyncio.Task[Session]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Mark the outcome retrieved when every waiter went away.
        if not task.cancelled():
            task.exception()

    async def _refresh_once(self) -> Session:
        refresh_token = await self._credentials.get(self._refresh_key)
        if not refresh_token:
            return await self._fail("no refresh token stored")

        self._refresh_count += 1
        generation = self._generation
        request = TransportRequest(
            method="POST",
            path=self._refresh_path,
            headers=dict(self._headers),
            body={"refresh_token": refresh_token},
            timeout=self._timeout,
        )
        try:
            response = await asyncio.wait_for(self._transport.send(request), self._timeout)
        except TransportError as exc:
            return await self._fail(f"transport failure ({exc.code.value})")
        except asyncio.TimeoutError:
            return await self._fail("timed out")

        if not response.ok:
            return await self._fail(f"status {response.status}")
        session = session_from_body(response.body)
        if session is None:
            return await self._fail("response lacks a token pair")

        if generation != self._generation:
            # Signed out, or signed in again, while the refresh was in flight.
            logger.warning("SessionManager: discarding refreshed pair for a replaced session")
            raise ClassifiedError(ErrorKind.AUTH, SESSION_EXPIRED_MESSAGE, retriable=False)

        await self.start(session)
        logger.debug("SessionManager: refresh succeeded")
        return session

    async def _fail(self, reason: str) -> Session:
        logger.warning("SessionManager: refresh failed: %s", reason)
        await self.clear()
        raise ClassifiedError(ErrorKind.AUTH, SESSION_EXPIRED_MESSAGE, retriable=False)

    def __repr__(self) -> str:
        return (
            f"SessionManager(refresh_path={self._refresh_path!r}, "
            f"refreshing={self.refreshing!r})"
        )


def session_from_body(body: Any) -> Session | None:
    """Extract a token pair from a login, register or refresh response body."""
    if not isinstance(body, dict):
        return None
    try:
        return Session(
            access_token=body.get("access_token") or "",
            refresh_token=body.get("refresh_token") or "",
        )
    except ValidationError:
        return None


__all__ = ["SessionManager", "session_from_body"]
