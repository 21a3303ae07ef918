"""Watchlist reconciliation across the local cache and the remote per-user document.

The engine owns the in-memory watchlist. Exactly one tier is authoritative
for the current identity: the local cache while signed out or anonymous,
the remote document once authenticated. Every async step is tagged with
the generation it was issued under; an identity transition bumps the
generation, and results carrying an older tag are dropped.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from etf_tracker.adapters.base import InstrumentDefinition, Quote
from etf_tracker.adapters.quote_generator import QuoteGenerator
from etf_tracker.auth.identity import Identity
from etf_tracker.errors import StorageUnavailable, TransientSyncError, ValidationError
from etf_tracker.instruments.catalog import find_definition
from etf_tracker.stores.local import LocalWatchlistStore
from etf_tracker.stores.remote import RemoteWatchlistStore, Unsubscribe

logger = logging.getLogger(__name__)


class MigrationState(str, enum.Enum):
    IDLE = "idle"
    OFFERED = "migration-offered"
    MIGRATED = "migrated"
    DECLINED = "declined"


@dataclass
class SyncContext:
    identity: Identity | None = None
    generation: int = 0
    remote_confirmed: bool = False
    unsubscribe: Unsubscribe | None = None


@dataclass
class SyncResult:
    """Outcome of a write-through. ``tier`` is "local", "remote" or "memory"."""

    tier: str
    persisted: bool
    error: StorageUnavailable | None = None
    stale: bool = False


@dataclass
class InstrumentChange:
    entry: Quote
    sync: SyncResult
    entries: list[Quote] = field(default_factory=list)


def normalize_symbol(symbol: str | None) -> str:
    return (symbol or "").strip().upper()


def merge_quotes(entries: Sequence[Quote], fresh: Sequence[Quote], initial: bool = False) -> list[Quote]:
    """Overwrite tracked symbols with their fresh quotes.

    Untracked catalog quotes are appended only when ``initial`` is set (first
    load after an identity transition); a steady-state refresh never grows
    the watchlist.
    """
    by_symbol = {quote.symbol: quote for quote in fresh}
    merged = [by_symbol[entry.symbol].copy() if entry.symbol in by_symbol else entry.copy() for entry in entries]
    if initial:
        tracked = {entry.symbol for entry in merged}
        merged.extend(quote.copy() for quote in fresh if quote.symbol not in tracked)
    return merged


class ReconciliationEngine:
    def __init__(
        self,
        catalog: Sequence[InstrumentDefinition],
        generator: QuoteGenerator,
        local_store: LocalWatchlistStore,
        remote_store: RemoteWatchlistStore | None = None,
        on_error: Callable[[Exception], Any] | None = None,
    ):
        self._catalog = tuple(catalog)
        self._generator = generator
        self._local = local_store
        self._remote = remote_store
        self.on_error = on_error
        self._ctx = SyncContext()
        self._entries: list[Quote] = []
        self._lock = asyncio.Lock()
        self.migration_state = MigrationState.IDLE
        self.last_sync: SyncResult | None = None

    @property
    def entries(self) -> list[Quote]:
        return [entry.copy() for entry in self._entries]

    @property
    def identity(self) -> Identity | None:
        return self._ctx.identity

    @property
    def generation(self) -> int:
        return self._ctx.generation

    @property
    def remote_store(self) -> RemoteWatchlistStore | None:
        return self._remote

    @property
    def migration_offered(self) -> bool:
        return self.migration_state is MigrationState.OFFERED

    def invalidate_in_flight(self) -> int:
        self._ctx.generation += 1
        return self._ctx.generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._ctx.generation

    def _apply(self, entries: Sequence[Quote]) -> None:
        self._entries = [entry.copy() for entry in entries]

    def _report(self, error: Exception) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("Error listener failed")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _read_local(self) -> list[Quote]:
        return await self._local.get() or []

    async def _purge_local(self) -> None:
        try:
            await self._local.delete()
        except StorageUnavailable as exc:
            logger.warning("event=local_purge_failed error=%s", exc)
            self._report(exc)

    async def _observe_remote(self, identity: Identity) -> list[Quote] | None:
        """First observation of an authenticated identity.

        Returns the authoritative entries, or ``None`` when neither tier holds
        anything. Raises StorageUnavailable if the remote tier is not ready;
        in that case nothing is migrated or overwritten.
        """
        if self._remote is None:
            raise StorageUnavailable("remote", "Remote storage is not configured.")
        document = await self._remote.get(identity.user_key)
        self._ctx.remote_confirmed = True
        if document is not None:
            logger.info("event=remote_document_adopted user=%s count=%s", identity.user_key, len(document))
            await self._purge_local()
            return document
        local_entries = await self._read_local()
        if local_entries:
            self.migration_state = MigrationState.OFFERED
            logger.info("event=migration_offered user=%s count=%s", identity.user_key, len(local_entries))
            return local_entries
        return None

    async def load(self, identity: Identity) -> list[Quote]:
        if identity.uses_remote_tier:
            return await self._observe_remote(identity) or []
        return await self._read_local()

    async def handle_transition(self, identity: Identity) -> StorageUnavailable | None:
        """Re-enter the engine for a new identity. Repeats of the current identity are no-ops."""
        if identity.same_as(self._ctx.identity):
            return None
        generation = self.invalidate_in_flight()
        previous, self._ctx.unsubscribe = self._ctx.unsubscribe, None
        if previous is not None:
            try:
                await previous()
            except Exception:
                logger.exception("Failed to cancel remote subscription")

        async with self._lock:
            if not self._is_current(generation):
                return None
            logger.info("event=identity_transition kind=%s user=%s", identity.kind.value, identity.user_key)
            self._ctx.identity = identity
            self._ctx.remote_confirmed = False
            self.migration_state = MigrationState.IDLE

            error: StorageUnavailable | None = None
            try:
                loaded = await self.load(identity)
            except StorageUnavailable as exc:
                logger.warning("event=load_degraded tier=%s error=%s", exc.tier, exc)
                loaded = list(self._entries)
                error = exc
            fresh = await self._generator.snapshot(self._catalog)
            if not self._is_current(generation):
                logger.info("event=stale_load_discarded generation=%s", generation)
                return None
            self._apply(merge_quotes(loaded, fresh, initial=True))

            if identity.uses_remote_tier and self._remote is not None:
                try:
                    self._ctx.unsubscribe = await self._remote.subscribe(
                        identity.user_key,
                        lambda entries, gen=generation: self._on_remote_change(gen, entries),
                        lambda exc, gen=generation: self._on_sync_error(gen, exc),
                    )
                except StorageUnavailable as exc:
                    logger.warning("event=subscribe_failed user=%s error=%s", identity.user_key, exc)
                    error = error or exc
        if error is not None:
            self._report(error)
        return error

    # ------------------------------------------------------------------
    # Remote push
    # ------------------------------------------------------------------

    async def _on_remote_change(self, generation: int, entries: list[Quote]) -> None:
        async with self._lock:
            if not self._is_current(generation):
                logger.debug("event=stale_push_ignored generation=%s", generation)
                return
            self._ctx.remote_confirmed = True
            if self.migration_state is MigrationState.OFFERED:
                # A document now exists, which makes it authoritative.
                logger.info("event=migration_offer_withdrawn reason=remote_document_appeared")
                self.migration_state = MigrationState.IDLE
            self._apply(entries)

    def _on_sync_error(self, generation: int, error: TransientSyncError) -> None:
        if not self._is_current(generation):
            return
        logger.warning("event=remote_sync_error error=%s", error)
        self._report(error)

    # ------------------------------------------------------------------
    # Write-through
    # ------------------------------------------------------------------

    async def _write_through(self, entries: list[Quote], generation: int) -> SyncResult:
        identity = self._ctx.identity
        if identity is None or self.migration_state is MigrationState.OFFERED:
            return SyncResult("memory", False)

        if identity.uses_remote_tier:
            if self._remote is None or not self._ctx.remote_confirmed:
                error = StorageUnavailable("remote", "Remote storage is not ready.")
                return SyncResult("memory", False, error=error)
            store_call = self._remote.put(identity.user_key, entries)
            tier = "remote"
        else:
            store_call = self._local.put(entries)
            tier = "local"

        try:
            await store_call
        except StorageUnavailable as exc:
            stale = not self._is_current(generation)
            if not stale:
                logger.warning("event=write_through_failed tier=%s error=%s", tier, exc)
                self._report(exc)
            return SyncResult(tier, False, error=exc, stale=stale)
        return SyncResult(tier, True, stale=not self._is_current(generation))

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def refresh(self, entries: Sequence[Quote] | None = None) -> list[Quote]:
        """Requote every tracked catalog symbol and write the result through."""
        async with self._lock:
            generation = self._ctx.generation
            identity = self._ctx.identity
            if (
                identity is not None
                and identity.uses_remote_tier
                and not self._ctx.remote_confirmed
                and self.migration_state is MigrationState.IDLE
            ):
                try:
                    observed = await self._observe_remote(identity)
                except StorageUnavailable as exc:
                    logger.warning("event=remote_still_unavailable error=%s", exc)
                else:
                    if observed is not None and self._is_current(generation):
                        self._apply(observed)

            current = list(entries) if entries is not None else list(self._entries)
            fresh = await self._generator.snapshot(self._catalog)
            if not self._is_current(generation):
                logger.info("event=stale_refresh_discarded generation=%s", generation)
                self.last_sync = SyncResult("memory", False, stale=True)
                return self.entries

            refreshed = merge_quotes(current, fresh)
            self._apply(refreshed)
            self.last_sync = await self._write_through(refreshed, generation)
            return self.entries

    async def add_instrument(self, symbol: str) -> InstrumentChange:
        key = normalize_symbol(symbol)
        if not key:
            raise ValidationError("Please enter an ETF symbol.")
        async with self._lock:
            if any(entry.symbol == key for entry in self._entries):
                raise ValidationError(f"{key} is already in your list.")
            generation = self._ctx.generation
            definition = find_definition(self._catalog, key)
            quote = self._generator.generate(definition) if definition else self._generator.generate_generic(key)
            updated = [*self._entries, quote]
            self._apply(updated)
            sync = await self._write_through(updated, generation)
            self.last_sync = sync
            return InstrumentChange(entry=quote.copy(), sync=sync, entries=self.entries)

    async def remove_instrument(self, entry_id: str) -> InstrumentChange:
        async with self._lock:
            target = next((entry for entry in self._entries if entry.id == str(entry_id)), None)
            if target is None:
                raise ValidationError("That ETF is not in your list.")
            generation = self._ctx.generation
            updated = [entry for entry in self._entries if entry.id != target.id]
            self._apply(updated)
            sync = await self._write_through(updated, generation)
            self.last_sync = sync
            return InstrumentChange(entry=target, sync=sync, entries=self.entries)

    async def accept_migration(self) -> list[Quote] | None:
        """Copy the local cache verbatim into the remote document, then purge it.

        Returns ``None`` when no offer is pending. A failed copy raises
        StorageUnavailable and leaves both the offer and the local cache intact.
        """
        async with self._lock:
            if self.migration_state is not MigrationState.OFFERED:
                return None
            identity = self._ctx.identity
            generation = self._ctx.generation
            if self._remote is None or identity is None:
                raise StorageUnavailable("remote", "Remote storage is not configured.")
            local_entries = await self._read_local()
            await self._remote.put(identity.user_key, local_entries)
            if not self._is_current(generation):
                return None
            await self._purge_local()
            self.migration_state = MigrationState.MIGRATED
            self._apply(local_entries)
            logger.info("event=migration_completed user=%s count=%s", identity.user_key, len(local_entries))
            return self.entries

    async def decline_migration(self) -> list[Quote] | None:
        """Discard the local cache and start fresh in the cloud. ``None`` when no offer is pending."""
        async with self._lock:
            if self.migration_state is not MigrationState.OFFERED:
                return None
            generation = self._ctx.generation
            await self._local.delete()
            fresh = await self._generator.snapshot(self._catalog)
            if not self._is_current(generation):
                return None
            self.migration_state = MigrationState.DECLINED
            self._apply(merge_quotes([], fresh, initial=True))
            identity = self._ctx.identity
            logger.info("event=migration_declined user=%s", identity.user_key if identity else None)
            return self.entries

    async def close(self) -> None:
        self.invalidate_in_flight()
        unsubscribe, self._ctx.unsubscribe = self._ctx.unsubscribe, None
        if unsubscribe is not None:
            await unsubscribe()
