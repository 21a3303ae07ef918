from __future__ import annotations

import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool


# Ensure `import etf_tracker...` works even when pytest is launched from inside the package.
REPO_ROOT = Path(__file__).resolve().parents[2]
repo_root_str = str(REPO_ROOT)
if repo_root_str not in sys.path:
    sys.path.insert(0, repo_root_str)


class ScriptedRandom:
    """Random source that replays a fixed list of floats."""

    def __init__(self, values):
        self._values = list(values)
        self.calls = 0

    def random(self) -> float:
        value = self._values[self.calls % len(self._values)]
        self.calls += 1
        return value


@pytest.fixture
def session_factory():
    from etf_tracker.db.database import build_session_factory, init_db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return build_session_factory(engine)


@pytest.fixture
def generator():
    from etf_tracker.adapters.quote_generator import QuoteGenerator

    return QuoteGenerator(seed=42)


@pytest.fixture
def local_store(session_factory):
    from etf_tracker.stores.local import LocalWatchlistStore

    return LocalWatchlistStore(session_factory, slot="etfTrackerData")


@pytest.fixture
def remote_store():
    from etf_tracker.stores.remote import InMemoryRemoteStore

    return InMemoryRemoteStore(app_id="test-app")


@pytest.fixture
def make_engine(generator, local_store, remote_store):
    from etf_tracker.instruments.catalog import DEFAULT_CATALOG
    from etf_tracker.services.reconciliation import ReconciliationEngine

    def _make(**overrides):
        kwargs = {
            "catalog": DEFAULT_CATALOG,
            "generator": generator,
            "local_store": local_store,
            "remote_store": remote_store,
        }
        kwargs.update(overrides)
        return ReconciliationEngine(**kwargs)

    return _make


@pytest.fixture
def scripted_random():
    return ScriptedRandom
