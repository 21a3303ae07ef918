"""SQLite database backing the device-local watchlist cache."""
from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from etf_tracker.config.settings import get_settings

Base = declarative_base()


def build_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = build_engine(get_settings().sqlite_url)
SessionLocal = build_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    # Models register their tables on Base when imported.
    from etf_tracker.db import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
