"""Shared lightweight types to keep module interfaces explicit and typed."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class LineKind(Enum):
    """How a live stream line is handled once its discriminant is known."""

    PAYLOAD = "payload"
    HEARTBEAT = "heartbeat"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class Credentials:
    """Account identifier and bearer token for one profile."""

    account_id: str
    token: str


@dataclass(frozen=True, slots=True)
class PriceBar:
    """Open/high/low/close prices kept as the decimal strings the feed sent."""

    o: str
    h: str
    l: str
    c: str

    def to_record(self) -> dict[str, str]:
        return {"o": self.o, "h": self.h, "l": self.l, "c": self.c}


@dataclass(frozen=True, slots=True)
class Candlestick:
    """One OHLC bar for an instrument/granularity pair."""

    time: str
    timestamp_ns: int
    volume: int
    complete: bool
    mid: PriceBar | None = None
    bid: PriceBar | None = None
    ask: PriceBar | None = None

    def to_record(self) -> dict[str, Any]:
        """Return the canonical output shape, omitting views that were not requested."""

        record: dict[str, Any] = {
            "complete": self.complete,
            "volume": self.volume,
            "time": self.time,
        }
        for name in ("mid", "bid", "ask"):
            view = getattr(self, name)
            if view is not None:
                record[name] = view.to_record()
        return record


@dataclass(slots=True)
class PollCursor:
    """Last emitted candle plus the `from` timestamp of the next request."""

    window_start: str
    last_emitted: Candlestick | None = None
