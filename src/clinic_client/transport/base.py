"""Abstract transport used by the session and pipeline layers.

A transport issues one HTTP request and either returns a response (any
status code) or raises ``TransportError`` when no response was obtained.
The raw body exchanged with callers is already-parsed JSON.

Classes
-------
- TransportErrorCode  — why no response was obtained
- TransportError      — raised when no response was obtained
- TransportRequest    — one outgoing request
- TransportResponse   — one received response
- Transport           — abstract base for all transports
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TransportErrorCode(str, Enum):
    """Reasons a request produced no response."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CONNECTION = "connection"


class TransportError(Exception):
    """No response was received for a request.

    Parameters
    ----------
    code:
        Failure reason.
    message:
        Low-level description, for logs only.
    """

    def __init__(self, code: TransportErrorCode, message: str = "") -> None:
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)


class TransportRequest(BaseModel):
    """A single outgoing HTTP request.

    Parameters
    ----------
    method:
        HTTP verb, upper case.
    path:
        Path relative to the transport's base URL.
    headers:
        Request headers.
    body:
        JSON-serialisable body, or None.
    params:
        Query-string parameters.
    timeout:
        Upper bound in seconds for this request.
    """

    method: str
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    params: dict[str, str] = Field(default_factory=dict)
    timeout: float = 45.0


class TransportResponse(BaseModel):
    """A received HTTP response with its parsed JSON body."""

    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return self.status < 400


class Transport(ABC):
    """Protocol for issuing HTTP requests asynchronously."""

    @abstractmethod
    async def send(self, request: TransportRequest) -> TransportResponse:
        """Issue ``request`` and return its response.

        Raises
        ------
        TransportError
            If no response could be obtained.
        """

    async def aclose(self) -> None:
        """Release any pooled connections.  Default is a no-op."""


__all__ = [
    "Transport",
    "TransportError",
    "TransportErrorCode",
    "TransportRequest",
    "TransportResponse",
]
