"""Convenience API for clinic-client — wire everything in one call.

Example
-------
::

    from clinic_client import create_client
    client = create_client()
    await client.login("ana@example.com", "secret")
    upcoming = await client.get_upcoming_appointments()

"""
from __future__ import annotations

from clinic_client.client import ApiClient
from clinic_client.config import ClientConfig
from clinic_client.offline.cache import ReadThroughCache
from clinic_client.offline.queue import OfflineQueue
from clinic_client.pipeline import RequestPipeline
from clinic_client.session.manager import SessionManager
from clinic_client.storage.base import KeyValueStore
from clinic_client.transport.base import Transport


def create_client(
    config: ClientConfig | None = None,
    *,
    credentials: KeyValueStore | None = None,
    cache_store: KeyValueStore | None = None,
    transport: Transport | None = None,
) -> ApiClient:
    """Build a fully wired ``ApiClient``.

    Parameters
    ----------
    config:
        Client settings.  Defaults to ``ClientConfig()``.
    credentials:
        Store for the token pair.  Defaults to a ``SQLiteStore`` at
        ``config.store_path`` so the session survives restarts.
    cache_store:
        Store for cache entries and the offline queue.  Defaults to
        ``credentials``; the two use disjoint key prefixes.
    transport:
        Transport to use.  Defaults to an ``HttpxTransport`` on
        ``config.base_url``.

    Returns
    -------
    ApiClient
    """
    config = config or ClientConfig()
    if credentials is None:
        from clinic_client.storage.sqlite import SQLiteStore

        credentials = SQLiteStore(db_path=config.store_path)
    if cache_store is None:
        cache_store = credentials
    if transport is None:
        from clinic_client.transport.http import HttpxTransport

        transport = HttpxTransport(base_url=config.base_url)

    session = SessionManager(
        credentials,
        transport,
        refresh_path=config.refresh_path,
        access_token_key=config.access_token_key,
        refresh_token_key=config.refresh_token_key,
        timeout=config.timeout_seconds,
        headers=config.default_headers,
    )
    pipeline = RequestPipeline(
        transport,
        session,
        cache=ReadThroughCache(cache_store, prefix=config.cache_prefix),
        queue=OfflineQueue(cache_store, key=config.queue_key),
        timeout=config.timeout_seconds,
        headers=config.default_headers,
    )
    return ApiClient(pipeline)
