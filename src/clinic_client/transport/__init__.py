"""Transport subpackage.

Public surface
--------------
- Transport           — abstract base class
- TransportRequest    — outgoing request model
- TransportResponse   — received response model
- TransportError      — raised when no response was obtained
- TransportErrorCode  — timeout / cancelled / connection
- HttpxTransport      — httpx.AsyncClient implementation
"""
from __future__ import annotations

from clinic_client.transport.base import (
    Transport,
    TransportError,
    TransportErrorCode,
    TransportRequest,
    TransportResponse,
)
from clinic_client.transport.http import HttpxTransport

__all__ = [
    "HttpxTransport",
    "Transport",
    "TransportError",
    "TransportErrorCode",
    "TransportRequest",
    "TransportResponse",
]
