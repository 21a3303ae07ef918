from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any

from etf_tracker.errors import AuthFailure, StorageUnavailable, TransientSyncError, ValidationError
from etf_tracker.services.market_snapshot import MarketSnapshotAnalyzer
from etf_tracker.services.reconciliation import InstrumentChange, ReconciliationEngine, SyncResult
from etf_tracker.services.session import SessionController

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusMessage:
    text: str
    type: str = "info"
    reason: str | None = None


def _saved_message(symbol: str, verb: str, sync: SyncResult) -> StatusMessage:
    if sync.persisted and sync.tier == "remote":
        text = f"{symbol} added and saved to cloud!" if verb == "added" else f"{symbol} removed from cloud!"
        return StatusMessage(text, "success")
    if sync.persisted:
        return StatusMessage(f"{symbol} {verb} locally. Log in to save.", "success")
    if sync.tier == "remote":
        action = "save" if verb == "added" else "remove"
        preposition = "to" if verb == "added" else "from"
        return StatusMessage(f"Failed to {action} {symbol} {preposition} cloud.", "error")
    if sync.tier == "local":
        return StatusMessage(f"{symbol} {verb}, but local storage is unavailable.", "error")
    if sync.error is not None:
        return StatusMessage(f"{symbol} {verb}. Cloud sync is not ready yet.", "info")
    return StatusMessage(f"{symbol} {verb}. Choose whether to migrate your local data to save it.", "info")


class WatchlistTracker:
    """User-facing watchlist operations on top of the session and the engine.

    Each operation returns a StatusMessage fit for a transient notice; none of
    them raise for expected failures.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        session: SessionController,
        analyzer: MarketSnapshotAnalyzer | None = None,
        refresh_interval: float = 0.0,
    ):
        self.engine = engine
        self.session = session
        self.analyzer = analyzer or MarketSnapshotAnalyzer()
        self.refresh_interval = refresh_interval
        self.last_status: StatusMessage | None = None
        self.loading = False
        self._consumer_task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, initial_token: str | None = None, anonymous: bool = True) -> None:
        if self._consumer_task and not self._consumer_task.done():
            return
        self._stop_event.clear()
        self._consumer_task = asyncio.create_task(self._transition_loop(), name="watchlist-transitions")
        await self.session.start(initial_token=initial_token, anonymous=anonymous)
        await self._settle()
        if self.refresh_interval > 0:
            self._refresh_task = asyncio.create_task(self._refresh_loop(), name="watchlist-refresh")
        logger.info("event=tracker_started refresh_interval_seconds=%s", self.refresh_interval)

    async def stop(self) -> None:
        self._stop_event.set()
        if self._refresh_task:
            await self._refresh_task
            self._refresh_task = None
        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None
        await self.engine.close()
        logger.info("event=tracker_stopped")

    async def _apply_transition(self, identity) -> None:
        self.loading = True
        try:
            error = await self.engine.handle_transition(identity)
        except Exception:
            logger.exception("Identity transition failed")
            self.last_status = StatusMessage("Failed to load ETF data.", "error")
        else:
            if isinstance(error, StorageUnavailable):
                self.last_status = StatusMessage(str(error), "error")
        finally:
            self.loading = False

    async def _transition_loop(self) -> None:
        while True:
            identity = await self.session.transitions.get()
            try:
                await self._apply_transition(identity)
            finally:
                self.session.transitions.task_done()

    async def _settle(self) -> None:
        if self._consumer_task and not self._consumer_task.done():
            await self.session.wait_settled()
            return
        # No consumer running: process pending transitions inline.
        while not self.session.transitions.empty():
            identity = self.session.transitions.get_nowait()
            try:
                await self._apply_transition(identity)
            finally:
                self.session.transitions.task_done()

    async def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.refresh_interval)
            except asyncio.TimeoutError:
                pass
            else:
                break
            try:
                await self.engine.refresh()
            except Exception:
                logger.exception("Periodic refresh failed")

    def on_engine_error(self, error: Exception) -> None:
        if isinstance(error, TransientSyncError):
            self.last_status = StatusMessage("Error syncing data from cloud.", "error")
        elif isinstance(error, StorageUnavailable):
            self.last_status = StatusMessage(str(error), "error")

    def _done(self, status: StatusMessage) -> StatusMessage:
        self.last_status = status
        return status

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def add_instrument(self, symbol: str) -> StatusMessage:
        try:
            change: InstrumentChange = await self.engine.add_instrument(symbol)
        except ValidationError as exc:
            return self._done(StatusMessage(str(exc), "error", reason="validation"))
        return self._done(_saved_message(change.entry.symbol, "added", change.sync))

    async def remove_instrument(self, entry_id: str) -> StatusMessage:
        try:
            change = await self.engine.remove_instrument(entry_id)
        except ValidationError as exc:
            return self._done(StatusMessage(str(exc), "error", reason="validation"))
        return self._done(_saved_message(change.entry.symbol, "removed", change.sync))

    async def refresh_all(self) -> StatusMessage:
        self.loading = True
        try:
            await self.engine.refresh()
        finally:
            self.loading = False
        sync = self.engine.last_sync
        if sync is None or sync.stale:
            return self._done(StatusMessage("Quotes refreshed.", "info"))
        if sync.persisted or sync.error is None:
            return self._done(StatusMessage("Quotes refreshed.", "success"))
        if sync.tier == "remote":
            return self._done(StatusMessage("Quotes refreshed, but saving to cloud failed.", "error"))
        if sync.tier == "local":
            return self._done(StatusMessage("Quotes refreshed, but local storage is unavailable.", "error"))
        return self._done(StatusMessage("Quotes refreshed. Cloud sync is not ready yet.", "info"))

    async def sign_in(self, token: str | None = None) -> StatusMessage:
        try:
            if token:
                identity = await self.session.sign_in(token)
            else:
                identity = await self.session.sign_in_anonymously()
        except AuthFailure as exc:
            logger.warning("event=sign_in_failed error=%s", exc)
            return self._done(StatusMessage(str(exc), "error", reason="auth"))
        await self._settle()
        if self.engine.migration_offered:
            return self._done(StatusMessage("Signed in. Local data found: migrate it to your account?", "info"))
        if token:
            return self._done(StatusMessage(f"Signed in as {identity.display_name}!", "success"))
        return self._done(StatusMessage("Signed in anonymously.", "success"))

    async def sign_out(self) -> StatusMessage:
        try:
            await self.session.sign_out()
        except AuthFailure as exc:
            logger.warning("event=sign_out_failed error=%s", exc)
            return self._done(StatusMessage(f"Sign out failed: {exc}", "error", reason="auth"))
        await self._settle()
        return self._done(StatusMessage("Signed out successfully!", "success"))

    async def accept_migration(self) -> StatusMessage:
        try:
            migrated = await self.engine.accept_migration()
        except StorageUnavailable as exc:
            logger.warning("event=migration_failed error=%s", exc)
            return self._done(StatusMessage("Failed to migrate local data to cloud.", "error"))
        if migrated is None:
            return self._done(StatusMessage("No local data is waiting to be migrated.", "info"))
        return self._done(StatusMessage("Local data migrated to your account!", "success"))

    async def decline_migration(self) -> StatusMessage:
        try:
            result = await self.engine.decline_migration()
        except StorageUnavailable as exc:
            logger.warning("event=migration_decline_failed error=%s", exc)
            return self._done(StatusMessage("Failed to discard local data.", "error"))
        if result is None:
            return self._done(StatusMessage("No local data is waiting to be migrated.", "info"))
        return self._done(StatusMessage("Local data discarded. Starting fresh in the cloud.", "success"))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def view(self) -> dict[str, Any]:
        entries = self.engine.entries
        snapshot = self.analyzer.analyze(entries)
        identity = self.session.identity
        return {
            "identity": {
                "kind": identity.kind.value,
                "user_key": identity.user_key,
                "display_name": identity.display_name,
            },
            "entries": [entry.to_dict() for entry in entries],
            "top_gainer": snapshot.gainer.to_dict() if snapshot.gainer else None,
            "top_loser": snapshot.loser.to_dict() if snapshot.loser else None,
            "migration_state": self.engine.migration_state.value,
            "migration_offered": self.engine.migration_offered,
            "loading": self.loading,
            "status": asdict(self.last_status) if self.last_status else None,
        }
