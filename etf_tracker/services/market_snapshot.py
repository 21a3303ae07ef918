from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from etf_tracker.adapters.base import Quote


@dataclass(frozen=True)
class MarketSnapshot:
    gainer: Quote | None = None
    loser: Quote | None = None


class MarketSnapshotAnalyzer:
    """Top gainer and top loser by change percent.

    Strict comparisons keep the earliest entry on ties, so the result only
    depends on input order.
    """

    def analyze(self, entries: Sequence[Quote]) -> MarketSnapshot:
        if not entries:
            return MarketSnapshot()
        gainer = loser = entries[0]
        for entry in entries:
            if entry.change_percent > gainer.change_percent:
                gainer = entry
            if entry.change_percent < loser.change_percent:
                loser = entry
        return MarketSnapshot(gainer=gainer, loser=loser)
