from __future__ import annotations

from etf_tracker.api.routes import watchlist

__all__ = ["watchlist"]
