from __future__ import annotations

import asyncio

import pytest

from etf_tracker.adapters.base import Quote
from etf_tracker.auth.identity import SIGNED_OUT, Identity, IdentityKind
from etf_tracker.errors import StorageUnavailable
from etf_tracker.services.reconciliation import MigrationState
from etf_tracker.stores.remote import InMemoryRemoteStore


def _user(key: str = "user-1") -> Identity:
    return Identity(IdentityKind.AUTHENTICATED_REMOTE, user_key=key, display_name="Test User")


NIFTY = Quote(id="NSE001", symbol="NIFTYBEES", name="Nippon India ETF Nifty BeES", price=251.0)


class _RejectingRemote(InMemoryRemoteStore):
    def __init__(self):
        super().__init__(app_id="test-app")
        self.reject = True

    async def put(self, user_key, entries):
        if self.reject:
            raise StorageUnavailable("remote", "Remote storage could not be written.")
        await super().put(user_key, entries)


def _offer(engine, local_store, entries=(NIFTY,)):
    async def _run():
        await local_store.put(list(entries))
        await engine.handle_transition(_user())

    return _run()


def test_local_data_without_remote_document_offers_migration(make_engine, local_store, remote_store) -> None:
    engine = make_engine()
    asyncio.run(_offer(engine, local_store))
    assert engine.migration_state is MigrationState.OFFERED
    assert engine.migration_offered
    assert remote_store.document("user-1") is None


def test_accept_copies_local_entries_verbatim(make_engine, local_store, remote_store) -> None:
    engine = make_engine()

    async def scenario():
        await _offer(engine, local_store)
        migrated = await engine.accept_migration()
        again = await engine.accept_migration()
        return migrated, again, await local_store.get()

    migrated, again, local_after = asyncio.run(scenario())
    assert remote_store.document("user-1") == {"entries": [NIFTY.to_dict()]}
    assert migrated == [NIFTY]
    assert engine.entries == [NIFTY]
    assert local_after is None
    assert engine.migration_state is MigrationState.MIGRATED
    assert again is None


def test_decline_discards_local_and_starts_fresh(make_engine, local_store, remote_store) -> None:
    engine = make_engine()

    async def scenario():
        await _offer(engine, local_store)
        result = await engine.decline_migration()
        return result, await local_store.get()

    result, local_after = asyncio.run(scenario())
    assert engine.migration_state is MigrationState.DECLINED
    assert local_after is None
    assert remote_store.document("user-1") is None
    assert [q.symbol for q in result] == ["NIFTYBEES", "BANKBEES", "MON100", "GOLDHALF", "NX50ETF"]


def test_writes_are_deferred_while_offer_pending(make_engine, local_store, remote_store) -> None:
    engine = make_engine()

    async def scenario():
        await _offer(engine, local_store)
        change = await engine.add_instrument("XYZ")
        await engine.refresh()
        return change, await local_store.get()

    change, local_after = asyncio.run(scenario())
    assert change.sync.tier == "memory"
    assert not change.sync.persisted
    assert change.sync.error is None
    assert remote_store.document("user-1") is None
    assert local_after == [NIFTY]


def test_failed_copy_keeps_offer_and_local_cache(make_engine, local_store) -> None:
    remote = _RejectingRemote()
    engine = make_engine(remote_store=remote)

    async def scenario():
        await _offer(engine, local_store)
        with pytest.raises(StorageUnavailable):
            await engine.accept_migration()
        state_after_failure = engine.migration_state
        local_after_failure = await local_store.get()
        remote.reject = False
        migrated = await engine.accept_migration()
        return state_after_failure, local_after_failure, migrated

    state_after_failure, local_after_failure, migrated = asyncio.run(scenario())
    assert state_after_failure is MigrationState.OFFERED
    assert local_after_failure == [NIFTY]
    assert migrated == [NIFTY]
    assert remote.document("user-1") == {"entries": [NIFTY.to_dict()]}


def test_remote_document_appearing_withdraws_offer(make_engine, local_store, remote_store) -> None:
    engine = make_engine()
    other_device = [Quote(id="42", symbol="ABC", name="ABC ETF (Generic Mock)", price=150.0)]

    async def scenario():
        await _offer(engine, local_store)
        await remote_store.put("user-1", other_device)
        await remote_store.flush()
        return await engine.accept_migration()

    result = asyncio.run(scenario())
    assert result is None
    assert engine.migration_state is MigrationState.IDLE
    assert engine.entries == other_device


def test_later_transition_resets_migration_state(make_engine, local_store) -> None:
    engine = make_engine()

    async def scenario():
        await _offer(engine, local_store)
        await engine.decline_migration()
        await engine.handle_transition(SIGNED_OUT)

    asyncio.run(scenario())
    assert engine.migration_state is MigrationState.IDLE


def test_empty_local_cache_offers_nothing(make_engine, local_store) -> None:
    engine = make_engine()
    asyncio.run(_offer(engine, local_store, entries=()))
    assert engine.migration_state is MigrationState.IDLE
    assert not engine.migration_offered


def test_decline_without_offer_is_noop(make_engine, local_store) -> None:
    engine = make_engine()

    async def scenario():
        await engine.handle_transition(_user())
        return await engine.decline_migration()

    assert asyncio.run(scenario()) is None
    assert engine.migration_state is MigrationState.IDLE
