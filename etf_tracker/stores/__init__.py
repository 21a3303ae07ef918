from __future__ import annotations

from etf_tracker.stores.local import LocalWatchlistStore
from etf_tracker.stores.remote import (
    InMemoryRemoteStore,
    RedisRemoteStore,
    RemoteWatchlistStore,
    document_path,
)

__all__ = [
    "LocalWatchlistStore",
    "RemoteWatchlistStore",
    "InMemoryRemoteStore",
    "RedisRemoteStore",
    "document_path",
]
