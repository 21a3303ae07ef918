from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Protocol


class RandomSource(Protocol):
    """Anything with a ``random()`` returning a uniform float in [0, 1)."""

    def random(self) -> float: ...


@dataclass(frozen=True)
class InstrumentDefinition:
    id: str
    symbol: str
    name: str
    base_price: float
    volume_factor: float
    fifty_two_week_high_base: float
    fifty_two_week_low_base: float
    market_cap: str


@dataclass
class Quote:
    id: str
    symbol: str
    name: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0
    volume: int = 0
    market_cap: str = ""
    fifty_two_week_high: float = 0.0
    fifty_two_week_low: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Quote":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in payload.items() if k in known}
        data["id"] = str(data.get("id", ""))
        data["symbol"] = str(data.get("symbol", "")).strip().upper()
        data.setdefault("name", data["symbol"])
        # Older payloads stored numbers as fixed-point strings.
        for key in ("price", "change", "change_percent", "fifty_two_week_high", "fifty_two_week_low"):
            if key in data:
                data[key] = float(data[key])
        if "volume" in data:
            data["volume"] = int(float(data["volume"]))
        if "price" not in data:
            data["price"] = 0.0
        return cls(**data)

    def copy(self) -> "Quote":
        return replace(self)


WatchlistEntry = Quote


def entries_to_payload(entries: list[Quote]) -> list[dict[str, Any]]:
    return [entry.to_dict() for entry in entries]


def entries_from_payload(payload: Any) -> list[Quote]:
    if not isinstance(payload, list):
        return []
    return [Quote.from_dict(item) for item in payload if isinstance(item, dict)]
