from __future__ import annotations

import logging
from typing import Callable

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from etf_tracker.adapters.quote_generator import QuoteGenerator
from etf_tracker.auth.provider import DisabledIdentityProvider, IdentityProvider, TokenIdentityProvider
from etf_tracker.config.settings import AppSettings
from etf_tracker.instruments.catalog import load_catalog
from etf_tracker.services.reconciliation import ReconciliationEngine
from etf_tracker.services.session import SessionController
from etf_tracker.services.tracker import WatchlistTracker
from etf_tracker.stores.local import LocalWatchlistStore
from etf_tracker.stores.remote import InMemoryRemoteStore, RedisRemoteStore, RemoteWatchlistStore

logger = logging.getLogger(__name__)


def build_remote_store(settings: AppSettings) -> RemoteWatchlistStore | None:
    if settings.remote_backend == "redis":
        return RedisRemoteStore(settings.redis_url, app_id=settings.app_id)
    if settings.remote_backend == "memory":
        return InMemoryRemoteStore(app_id=settings.app_id)
    logger.warning("No remote tier configured. Running in local storage only mode.")
    return None


def build_tracker(
    settings: AppSettings,
    session_factory: Callable[[], Session],
    remote_store: RemoteWatchlistStore | None = None,
    provider: IdentityProvider | None = None,
    generator: QuoteGenerator | None = None,
) -> WatchlistTracker:
    if remote_store is None:
        remote_store = build_remote_store(settings)
    if provider is None:
        provider = TokenIdentityProvider() if remote_store is not None else DisabledIdentityProvider()
    engine = ReconciliationEngine(
        catalog=load_catalog(settings.catalog_path),
        generator=generator or QuoteGenerator(seed=settings.quote_seed),
        local_store=LocalWatchlistStore(session_factory, slot=settings.local_slot),
        remote_store=remote_store,
    )
    session = SessionController(provider, on_transition=lambda _identity: engine.invalidate_in_flight())
    tracker = WatchlistTracker(engine, session, refresh_interval=settings.refresh_interval_seconds)
    engine.on_error = tracker.on_engine_error
    return tracker


def get_tracker(request: Request) -> WatchlistTracker:
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        raise HTTPException(status_code=503, detail="Watchlist tracker is not running")
    return tracker
