from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

REMOTE_BACKENDS = {"memory", "redis", "none"}


class AppSettings(BaseModel):
    app_name: str = "ETF Tracker API"
    app_version: str = "0.1.0"
    app_id: str = "default-app-id"
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )
    sqlite_url: str = "sqlite:///./etf_tracker.db"
    local_slot: str = "etfTrackerData"
    remote_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    refresh_interval_seconds: float = 30.0
    catalog_path: str | None = None
    quote_seed: int | None = None
    initial_auth_token: str | None = None
    anonymous_sign_in: bool = True


def _default_cors_origins() -> list[str]:
    return [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


def _parse_cors_env(raw: str | None) -> list[str] | None:
    if not raw:
        return None
    vals = [item.strip() for item in raw.split(",")]
    vals = [item for item in vals if item]
    return vals or None


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env(name: str) -> str | None:
    val = os.getenv(f"ETF_TRACKER_{name}")
    if val is not None and val.strip() == "":
        return None
    return val


def _optional_int(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    base = Path(__file__).resolve().parents[2]
    source = Path(os.getenv("ETF_TRACKER_SETTINGS_FILE") or base / "config" / "settings.yaml")
    payload: dict[str, Any] = {}
    if source.exists():
        payload = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        payload = {}
    app_cfg = payload.get("app", {}) or {}
    remote_cfg = payload.get("remote", {}) or {}
    quotes_cfg = payload.get("quotes", {}) or {}
    session_cfg = payload.get("session", {}) or {}

    remote_backend = (_env("REMOTE_BACKEND") or remote_cfg.get("backend", "memory")).strip().lower()
    if remote_backend not in REMOTE_BACKENDS:
        raise ValueError(f"Unknown remote backend {remote_backend!r}; expected one of {sorted(REMOTE_BACKENDS)}")

    return AppSettings(
        app_name=_env("APP_NAME") or app_cfg.get("name", "ETF Tracker API"),
        app_version=_env("APP_VERSION") or app_cfg.get("version", "0.1.0"),
        app_id=_env("APP_ID") or app_cfg.get("id", "default-app-id"),
        cors_origins=_parse_cors_env(_env("CORS_ORIGINS")) or app_cfg.get("cors_origins", _default_cors_origins()),
        sqlite_url=_env("SQLITE_URL") or payload.get("sqlite_url", "sqlite:///./etf_tracker.db"),
        local_slot=_env("LOCAL_SLOT") or payload.get("local_slot", "etfTrackerData"),
        remote_backend=remote_backend,
        redis_url=_env("REDIS_URL") or remote_cfg.get("redis_url", "redis://localhost:6379/0"),
        refresh_interval_seconds=float(
            _env("REFRESH_INTERVAL_SECONDS") or quotes_cfg.get("refresh_interval_seconds", 30.0)
        ),
        catalog_path=_env("CATALOG_PATH") or quotes_cfg.get("catalog_path"),
        quote_seed=_optional_int(_env("QUOTE_SEED") or quotes_cfg.get("seed")),
        initial_auth_token=_env("INITIAL_AUTH_TOKEN") or session_cfg.get("initial_auth_token"),
        anonymous_sign_in=_parse_bool(_env("ANONYMOUS_SIGN_IN"), bool(session_cfg.get("anonymous_sign_in", True))),
    )
