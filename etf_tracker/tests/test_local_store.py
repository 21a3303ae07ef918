from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from etf_tracker.adapters.base import Quote
from etf_tracker.errors import StorageUnavailable
from etf_tracker.stores.local import LocalWatchlistStore


def _entries() -> list[Quote]:
    return [
        Quote(id="NSE001", symbol="NIFTYBEES", name="Nippon India ETF Nifty BeES", price=251.2, change=1.2, change_percent=0.48),
        Quote(id="4711", symbol="ABC", name="ABC ETF (Generic Mock)", price=150.0),
    ]


def test_absent_slot_reads_as_none(local_store) -> None:
    assert asyncio.run(local_store.get()) is None


def test_put_get_and_delete(local_store) -> None:
    async def scenario():
        await local_store.put(_entries())
        stored = await local_store.get()
        await local_store.put(stored[:1])
        trimmed = await local_store.get()
        await local_store.delete()
        return stored, trimmed, await local_store.get()

    stored, trimmed, after_delete = asyncio.run(scenario())
    assert [e.symbol for e in stored] == ["NIFTYBEES", "ABC"]
    assert stored[0].change_percent == 0.48
    assert [e.symbol for e in trimmed] == ["NIFTYBEES"]
    assert after_delete is None


def test_slots_are_isolated(session_factory) -> None:
    first = LocalWatchlistStore(session_factory, slot="one")
    second = LocalWatchlistStore(session_factory, slot="two")

    async def scenario():
        await first.put(_entries())
        return await second.get()

    assert asyncio.run(scenario()) is None


def test_missing_table_raises_storage_unavailable() -> None:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    store = LocalWatchlistStore(sessionmaker(bind=engine))
    with pytest.raises(StorageUnavailable) as excinfo:
        asyncio.run(store.get())
    assert excinfo.value.tier == "local"
