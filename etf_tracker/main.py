from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from etf_tracker.api.deps import build_tracker
from etf_tracker.api.routes import watchlist
from etf_tracker.config.settings import get_settings
from etf_tracker.db.database import SessionLocal, init_db

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(watchlist.router)


@app.on_event("startup")
async def on_startup() -> None:
    init_db()
    tracker = build_tracker(settings, SessionLocal)
    app.state.tracker = tracker
    await tracker.start(initial_token=settings.initial_auth_token, anonymous=settings.anonymous_sign_in)
    logger.info("event=app_started remote_backend=%s app_id=%s", settings.remote_backend, settings.app_id)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    tracker = getattr(app.state, "tracker", None)
    if tracker is not None:
        await tracker.stop()
        remote = tracker.engine.remote_store
        if remote is not None:
            await remote.close()
        app.state.tracker = None


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}
