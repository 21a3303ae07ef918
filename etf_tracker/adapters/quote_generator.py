"""Synthetic quote generator for demo mode; no external market data is fetched."""
from __future__ import annotations

import math
import random
from typing import Iterable

from etf_tracker.adapters.base import InstrumentDefinition, Quote, RandomSource

BOUND_JITTER = 0.01
PRICE_JITTER = 0.01
MIN_PRICE = 0.01
VOLUME_LOT = 100_000

GENERIC_PRICE_RANGE = (100.0, 200.0)
GENERIC_CHANGE_RANGE = (-2.5, 2.5)
GENERIC_CHANGE_PERCENT_RANGE = (-0.5, 0.5)
GENERIC_HIGH_RANGE = (200.0, 300.0)
GENERIC_LOW_RANGE = (50.0, 100.0)
GENERIC_MARKET_CAP_RANGE = (10.0, 110.0)


class QuoteGenerator:
    """Generates internally consistent quotes around each instrument's base price.

    Catalog instruments get a price within +/-1% of the base, clamped into the
    cycle's perturbed 52-week range, with change and change percent derived from
    the clamped price. Symbols outside the catalog get independent draws from
    fixed generic ranges.
    """

    def __init__(self, seed: int | None = None, rng: RandomSource | None = None):
        self._rng: RandomSource = rng if rng is not None else random.Random(seed)

    def _uniform(self, low: float, high: float) -> float:
        return low + self._rng.random() * (high - low)

    def _volume(self, volume_factor: float) -> int:
        lots = math.floor(self._rng.random() * 50) + 10
        return math.floor(lots * VOLUME_LOT * volume_factor)

    def generate(self, definition: InstrumentDefinition) -> Quote:
        high = round(definition.fifty_two_week_high_base * (1 + self._uniform(-BOUND_JITTER, BOUND_JITTER)), 2)
        low = round(definition.fifty_two_week_low_base * (1 + self._uniform(-BOUND_JITTER, BOUND_JITTER)), 2)

        base = definition.base_price
        delta = self._uniform(-1.0, 1.0) * base * PRICE_JITTER
        price = max(MIN_PRICE, base + delta)
        # Low is applied last so it wins if the perturbed bounds cross.
        price = min(price, high)
        price = max(price, low)
        price = round(price, 2)

        return Quote(
            id=definition.id,
            symbol=definition.symbol,
            name=definition.name,
            price=price,
            change=round(price - base, 2),
            change_percent=round((price - base) / base * 100, 2),
            volume=self._volume(definition.volume_factor),
            market_cap=definition.market_cap,
            fifty_two_week_high=high,
            fifty_two_week_low=low,
        )

    def generate_generic(self, symbol: str) -> Quote:
        symbol = symbol.strip().upper()
        return Quote(
            id=str(math.floor(self._rng.random() * 1_000_000)),
            symbol=symbol,
            name=f"{symbol} ETF (Generic Mock)",
            price=round(self._uniform(*GENERIC_PRICE_RANGE), 2),
            change=round(self._uniform(*GENERIC_CHANGE_RANGE), 2),
            change_percent=round(self._uniform(*GENERIC_CHANGE_PERCENT_RANGE), 2),
            volume=self._volume(1.0),
            market_cap=f"{round(self._uniform(*GENERIC_MARKET_CAP_RANGE))}B",
            fifty_two_week_high=round(self._uniform(*GENERIC_HIGH_RANGE), 2),
            fifty_two_week_low=round(self._uniform(*GENERIC_LOW_RANGE), 2),
        )

    async def snapshot(self, catalog: Iterable[InstrumentDefinition]) -> list[Quote]:
        return [self.generate(definition) for definition in catalog]
