"""Tests for QuoteGenerator."""
import asyncio

import pytest

from etf_tracker.adapters.base import InstrumentDefinition
from etf_tracker.adapters.quote_generator import QuoteGenerator
from etf_tracker.instruments.catalog import DEFAULT_CATALOG


def _definition(base, high, low, volume_factor=1.0):
    return InstrumentDefinition("T1", "TEST", "Test ETF", base, volume_factor, high, low, "1B")


def test_catalog_quotes_stay_consistent_over_many_trials():
    gen = QuoteGenerator(seed=2024)
    for trial in range(10_000):
        definition = DEFAULT_CATALOG[trial % len(DEFAULT_CATALOG)]
        quote = gen.generate(definition)
        assert quote.fifty_two_week_low <= quote.price <= quote.fifty_two_week_high
        assert round(definition.base_price + quote.change, 2) == pytest.approx(quote.price, abs=1e-9)
        expected_pct = (quote.price - definition.base_price) / definition.base_price * 100
        assert quote.change_percent == pytest.approx(expected_pct, abs=0.005 + 1e-9)
        assert quote.volume > 0
        assert isinstance(quote.volume, int)


def test_bounds_are_perturbed_within_one_percent():
    gen = QuoteGenerator(seed=7)
    definition = DEFAULT_CATALOG[0]
    for _ in range(500):
        quote = gen.generate(definition)
        assert 260.0 * 0.99 - 0.01 <= quote.fifty_two_week_high <= 260.0 * 1.01 + 0.01
        assert 200.0 * 0.99 - 0.01 <= quote.fifty_two_week_low <= 200.0 * 1.01 + 0.01
        assert abs(quote.price - 250.0) <= 2.5 + 1e-9


def test_catalog_fields_carried_through():
    quote = QuoteGenerator(seed=1).generate(DEFAULT_CATALOG[1])
    assert quote.id == "NSE002"
    assert quote.symbol == "BANKBEES"
    assert quote.name == "Nippon India ETF Bank BeES"
    assert quote.market_cap == "80B"


def test_price_clamped_to_high_and_change_recomputed(scripted_random):
    # high jitter, low jitter, price delta, volume
    gen = QuoteGenerator(rng=scripted_random([0.5, 0.5, 0.999, 0.999]))
    quote = gen.generate(_definition(base=100.0, high=100.5, low=90.0, volume_factor=1.5))
    assert quote.fifty_two_week_high == 100.5
    assert quote.price == 100.5
    assert quote.change == 0.5
    assert quote.change_percent == 0.5
    assert quote.volume == 59 * 100_000 * 1.5


def test_inverted_bounds_resolve_to_low(scripted_random):
    gen = QuoteGenerator(rng=scripted_random([0.5, 0.5, 0.5, 0.0]))
    quote = gen.generate(_definition(base=100.0, high=95.0, low=96.0))
    assert quote.price == 96.0
    assert quote.change == -4.0
    assert quote.change_percent == -4.0
    assert quote.volume == 10 * 100_000


def test_generic_instrument_uses_fixed_ranges(scripted_random):
    gen = QuoteGenerator(rng=scripted_random([0.5]))
    quote = gen.generate_generic(" abc ")
    assert quote.symbol == "ABC"
    assert quote.name == "ABC ETF (Generic Mock)"
    assert quote.id == "500000"
    assert quote.price == 150.0
    assert quote.change == 0.0
    assert quote.change_percent == 0.0
    assert quote.volume == 3_500_000
    assert quote.market_cap == "60B"
    assert quote.fifty_two_week_high == 250.0
    assert quote.fifty_two_week_low == 75.0


def test_generic_ranges_over_trials():
    gen = QuoteGenerator(seed=3)
    for _ in range(1_000):
        quote = gen.generate_generic("XYZ")
        assert 100.0 <= quote.price <= 200.0
        assert -2.5 <= quote.change <= 2.5
        assert -0.5 <= quote.change_percent <= 0.5
        assert 200.0 <= quote.fifty_two_week_high <= 300.0
        assert 50.0 <= quote.fifty_two_week_low <= 100.0
        assert 1_000_000 <= quote.volume <= 5_900_000


def test_snapshot_covers_catalog_in_order():
    quotes = asyncio.run(QuoteGenerator(seed=5).snapshot(DEFAULT_CATALOG))
    assert [q.symbol for q in quotes] == ["NIFTYBEES", "BANKBEES", "MON100", "GOLDHALF", "NX50ETF"]


def test_deterministic_with_same_seed():
    q1 = QuoteGenerator(seed=99).generate(DEFAULT_CATALOG[2])
    q2 = QuoteGenerator(seed=99).generate(DEFAULT_CATALOG[2])
    assert q1 == q2
