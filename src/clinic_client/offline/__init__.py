"""Offline resilience: read-through cache and write queue."""
from __future__ import annotations

from clinic_client.offline.cache import CacheEntry, ReadThroughCache
from clinic_client.offline.queue import OfflineQueue, QueuedMutation

__all__ = ["CacheEntry", "OfflineQueue", "QueuedMutation", "ReadThroughCache"]
