from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import yaml

from etf_tracker.adapters.base import InstrumentDefinition

logger = logging.getLogger(__name__)

DEFAULT_CATALOG: tuple[InstrumentDefinition, ...] = (
    InstrumentDefinition("NSE001", "NIFTYBEES", "Nippon India ETF Nifty BeES", 250.00, 1.5, 260.00, 200.00, "100B"),
    InstrumentDefinition("NSE002", "BANKBEES", "Nippon India ETF Bank BeES", 500.00, 0.8, 550.00, 420.00, "80B"),
    InstrumentDefinition("NSE003", "MON100", "Motilal Oswal Nasdaq 100 ETF", 150.00, 0.5, 165.00, 120.00, "60B"),
    InstrumentDefinition("NSE004", "GOLDHALF", "Nippon India ETF Gold BeES", 48.00, 0.2, 52.00, 40.00, "20B"),
    InstrumentDefinition("NSE005", "NX50ETF", "ICICI Prudential Nifty Next 50 ETF", 70.00, 0.3, 75.00, 60.00, "30B"),
)


def _parse_definition(row: dict[str, Any]) -> InstrumentDefinition:
    return InstrumentDefinition(
        id=str(row["id"]),
        symbol=str(row["symbol"]).strip().upper(),
        name=str(row.get("name") or row["symbol"]),
        base_price=float(row["base_price"]),
        volume_factor=float(row.get("volume_factor", 1.0)),
        fifty_two_week_high_base=float(row["fifty_two_week_high_base"]),
        fifty_two_week_low_base=float(row["fifty_two_week_low_base"]),
        market_cap=str(row.get("market_cap", "")),
    )


def load_catalog(path: str | Path | None = None) -> tuple[InstrumentDefinition, ...]:
    """Load the seed catalog from YAML, or return the built-in one.

    The YAML file holds an ``instruments`` list; order is preserved.
    """
    if not path:
        return DEFAULT_CATALOG
    source = Path(path)
    if not source.exists():
        logger.warning("event=catalog_missing path=%s using_default=true", source)
        return DEFAULT_CATALOG
    payload = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    rows = payload.get("instruments", []) if isinstance(payload, dict) else []
    catalog = tuple(_parse_definition(row) for row in rows if isinstance(row, dict))
    logger.info("event=catalog_loaded path=%s count=%s", source, len(catalog))
    return catalog or DEFAULT_CATALOG


def find_definition(catalog: Sequence[InstrumentDefinition], symbol: str) -> InstrumentDefinition | None:
    key = symbol.strip().upper()
    for definition in catalog:
        if definition.symbol == key:
            return definition
    return None
