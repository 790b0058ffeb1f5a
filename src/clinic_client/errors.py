"""Failure classification for backend calls.

Every failed call is turned into exactly one ``ClassifiedError`` so the
presentation layer never needs to inspect raw status codes or transport
exceptions.

Rules, in priority order
------------------------
1. No response, timeout           -> transport, retriable
2. No response, cancelled         -> transport, not retriable
3. No response, anything else     -> transport, retriable
4. 401 / 403                      -> auth, retriable until a refresh was tried
5. 5xx                            -> server, retriable
6. other 4xx                      -> client, not retriable

Classes
-------
- ErrorKind        — the four failure families
- ClassifiedError  — immutable, raised failure record

Functions
---------
- classify_transport_error  — rules 1-3
- classify_response         — rules 4-6
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from clinic_client.transport.base import TransportError, TransportErrorCode

TIMEOUT_MESSAGE = "The server took too long to respond. It may be slow or unavailable."
CANCELLED_MESSAGE = "The request was cancelled."
CONNECTION_MESSAGE = "Could not reach the server. Check your connection and try again."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."
FORBIDDEN_MESSAGE = "You are not allowed to perform this action."
SERVER_MESSAGE = "The server is unavailable right now. Please try again later."
CLIENT_MESSAGE = "The request was invalid."


class ErrorKind(str, Enum):
    """Failure families surfaced to callers."""

    TRANSPORT = "transport"
    AUTH = "auth"
    SERVER = "server"
    CLIENT = "client"


class ClassifiedError(Exception):
    """A failed backend call, classified once and never changed.

    Parameters
    ----------
    kind:
        The failure family.
    message:
        Human-readable message suitable for display.
    retriable:
        Whether repeating the call could plausibly succeed.
    status:
        HTTP status of the response, or None when no response arrived.
    code:
        Transport failure code when no response arrived, else None.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        retriable: bool,
        status: int | None = None,
        code: TransportErrorCode | None = None,
    ) -> None:
        super().__init__(message)
        self._kind = kind
        self._message = message
        self._retriable = retriable
        self._status = status
        self._code = code

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def retriable(self) -> bool:
        return self._retriable

    @property
    def status(self) -> int | None:
        return self._status

    @property
    def code(self) -> TransportErrorCode | None:
        return self._code

    @property
    def is_connectivity(self) -> bool:
        """True for transport failures the offline paths may absorb.

        Cancellations are excluded: the caller abandoned the call.
        """
        return self._kind is ErrorKind.TRANSPORT and self._code is not TransportErrorCode.CANCELLED

    def __repr__(self) -> str:
        return (
            f"ClassifiedError(kind={self._kind.value!r}, retriable={self._retriable!r}, "
            f"status={self._status!r}, code={self._code!r})"
        )


def classify_transport_error(error: TransportError) -> ClassifiedError:
    """Classify a failure where no response was received."""
    if error.code is TransportErrorCode.TIMEOUT:
        return ClassifiedError(
            ErrorKind.TRANSPORT, TIMEOUT_MESSAGE, retriable=True, code=error.code
        )
    if error.code is TransportErrorCode.CANCELLED:
        return ClassifiedError(
            ErrorKind.TRANSPORT, CANCELLED_MESSAGE, retriable=False, code=error.code
        )
    return ClassifiedError(
        ErrorKind.TRANSPORT, CONNECTION_MESSAGE, retriable=True, code=error.code
    )


def classify_response(
    status: int,
    body: Any = None,
    *,
    refresh_attempted: bool = False,
) -> ClassifiedError:
    """Classify a response carrying an error status.

    Parameters
    ----------
    status:
        HTTP status code, expected to be >= 400.
    body:
        Parsed response body.  Its ``detail`` field feeds client-failure
        messages when present.
    refresh_attempted:
        Whether a token refresh was already tried for this call.

    Returns
    -------
    ClassifiedError
    """
    if status in (401, 403):
        message = SESSION_EXPIRED_MESSAGE if status == 401 else FORBIDDEN_MESSAGE
        return ClassifiedError(
            ErrorKind.AUTH, message, retriable=not refresh_attempted, status=status
        )
    if status >= 500:
        return ClassifiedError(ErrorKind.SERVER, SERVER_MESSAGE, retriable=True, status=status)
    return ClassifiedError(
        ErrorKind.CLIENT,
        extract_detail(body) or CLIENT_MESSAGE,
        retriable=False,
        status=status,
    )


def extract_detail(body: Any) -> str | None:
    """Return the error-detail text of a response body, if any.

    Handles a plain ``{"detail": "..."}`` as well as the validation form
    ``{"detail": [{"msg": "..."}, ...]}``.
    """
    if not isinstance(body, dict):
        return None
    detail = body.get("detail")
    if isinstance(detail, str) and detail.strip():
        return detail
    if isinstance(detail, list):
        messages = [
            str(item["msg"]) for item in detail if isinstance(item, dict) and item.get("msg")
        ]
        if messages:
            return "; ".join(messages)
    return None


__all__ = [
    "ClassifiedError",
    "ErrorKind",
    "classify_response",
    "classify_transport_error",
    "extract_detail",
]
