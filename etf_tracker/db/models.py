from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from etf_tracker.db.database import Base


class LocalSlotORM(Base):
    """One named slot of the device-local cache; the watchlist lives in a single slot."""

    __tablename__ = "local_slots"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload_json: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
