from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from etf_tracker.adapters.base import Quote, entries_from_payload, entries_to_payload
from etf_tracker.db.models import LocalSlotORM
from etf_tracker.errors import StorageUnavailable

logger = logging.getLogger(__name__)


class LocalWatchlistStore:
    """Device-local watchlist cache: a single named slot in SQLite.

    An absent slot means an empty watchlist. Blocking database calls run in a
    worker thread so the event loop is never held up.
    """

    tier = "local"

    def __init__(self, session_factory: Callable[[], Session], slot: str = "etfTrackerData"):
        self._session_factory = session_factory
        self.slot = slot

    def _read(self) -> list[Quote] | None:
        db = self._session_factory()
        try:
            row = db.get(LocalSlotORM, self.slot)
            if row is None:
                return None
            return entries_from_payload(row.payload_json)
        finally:
            db.close()

    def _write(self, entries: list[Quote]) -> None:
        db = self._session_factory()
        try:
            row = db.get(LocalSlotORM, self.slot)
            payload = entries_to_payload(entries)
            if row is None:
                db.add(LocalSlotORM(key=self.slot, payload_json=payload, updated_at=datetime.utcnow()))
            else:
                row.payload_json = payload
                row.updated_at = datetime.utcnow()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _remove(self) -> None:
        db = self._session_factory()
        try:
            row = db.get(LocalSlotORM, self.slot)
            if row is not None:
                db.delete(row)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def get(self) -> list[Quote] | None:
        try:
            return await asyncio.to_thread(self._read)
        except SQLAlchemyError as exc:
            logger.warning("Local watchlist read failed: %s", exc)
            raise StorageUnavailable(self.tier, "Local storage could not be read.") from exc

    async def put(self, entries: list[Quote]) -> None:
        try:
            await asyncio.to_thread(self._write, list(entries))
        except SQLAlchemyError as exc:
            logger.warning("Local watchlist write failed: %s", exc)
            raise StorageUnavailable(self.tier, "Local storage could not be written.") from exc

    async def delete(self) -> None:
        try:
            await asyncio.to_thread(self._remove)
        except SQLAlchemyError as exc:
            logger.warning("Local watchlist purge failed: %s", exc)
            raise StorageUnavailable(self.tier, "Local storage could not be cleared.") from exc
