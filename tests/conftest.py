"""Shared fixtures: a scripted transport and wired-up clients."""
from __future__ import annotations

import pytest

from clinic_client.client import ApiClient
from clinic_client.offline.cache import ReadThroughCache
from clinic_client.offline.queue import OfflineQueue
from clinic_client.pipeline import RequestPipeline
from clinic_client.session.manager import SessionManager
from clinic_client.storage.memory import InMemoryStore

from fakes import ScriptedTransport


@pytest.fixture()
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture()
def credentials() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def cache_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def session(credentials: InMemoryStore, transport: ScriptedTransport) -> SessionManager:
    return SessionManager(credentials, transport)


@pytest.fixture()
def pipeline(
    transport: ScriptedTransport,
    session: SessionManager,
    cache_store: InMemoryStore,
) -> RequestPipeline:
    return RequestPipeline(
        transport,
        session,
        cache=ReadThroughCache(cache_store),
        queue=OfflineQueue(cache_store),
        timeout=5.0,
    )


@pytest.fixture()
def client(pipeline: RequestPipeline) -> ApiClient:
    return ApiClient(pipeline)
