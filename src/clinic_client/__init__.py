"""clinic-client — resilient API client and session layer for the patient app.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import clinic_client
>>> clinic_client.__version__
'0.1.0'
"""
from __future__ import annotations

# Errors
from clinic_client.errors import (
    ClassifiedError,
    ErrorKind,
    classify_response,
    classify_transport_error,
)

# Transport
from clinic_client.transport.base import (
    Transport,
    TransportError,
    TransportErrorCode,
    TransportRequest,
    TransportResponse,
)
from clinic_client.transport.http import HttpxTransport

# Storage
from clinic_client.storage.base import KeyValueStore
from clinic_client.storage.memory import InMemoryStore
from clinic_client.storage.sqlite import SQLiteStore

# Session
from clinic_client.session.state import Session, SessionStatus
from clinic_client.session.manager import SessionManager

# Offline resilience
from clinic_client.offline.cache import CacheEntry, ReadThroughCache
from clinic_client.offline.queue import OfflineQueue, QueuedMutation

# Pipeline and facade
from clinic_client.pipeline import CallPolicy, QueuedResult, RequestPipeline, RequestSpec
from clinic_client.client import ApiClient
from clinic_client.config import ClientConfig, load_config
from clinic_client.convenience import create_client

__version__: str = "0.1.0"

__all__ = [
    "__version__",
    # Errors
    "ClassifiedError",
    "ErrorKind",
    "classify_response",
    "classify_transport_error",
    # Transport
    "HttpxTransport",
    "Transport",
    "TransportError",
    "TransportErrorCode",
    "TransportRequest",
    "TransportResponse",
    # Storage
    "InMemoryStore",
    "KeyValueStore",
    "SQLiteStore",
    # Session
    "Session",
    "SessionManager",
    "SessionStatus",
    # Offline
    "CacheEntry",
    "OfflineQueue",
    "QueuedMutation",
    "ReadThroughCache",
    # Pipeline and facade
    "ApiClient",
    "CallPolicy",
    "ClientConfig",
    "QueuedResult",
    "RequestPipeline",
    "RequestSpec",
    "create_client",
    "load_config",
]
