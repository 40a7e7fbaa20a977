"""Incremental candle polling with exactly-once emission per logical bar update."""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from oanda_cli.core.errors import DecodeError
from oanda_cli.core.time_utils import parse_timestamp_ns
from oanda_cli.core.types import Candlestick, PollCursor, PriceBar

CandleFetcher = Callable[[str], Awaitable[list[Candlestick]]]
RecordEmitter = Callable[[dict[str, Any]], None]

logger = logging.getLogger(__name__)


def is_newer(candidate: Candlestick, last_emitted: Candlestick | None) -> bool:
    """Return True when ``candidate`` is a bar update not yet emitted.

    A still-forming bar is re-emitted only when its volume grew, and once more
    when it becomes complete. Complete bars are immutable and older timestamps
    are stale.
    """

    if last_emitted is None:
        return True
    if candidate.timestamp_ns > last_emitted.timestamp_ns:
        return True
    if candidate.timestamp_ns < last_emitted.timestamp_ns:
        return False

    if not candidate.complete and not last_emitted.complete:
        return candidate.volume > last_emitted.volume
    return candidate.complete and not last_emitted.complete


def _parse_price_bar(raw: Any, view: str) -> PriceBar | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise DecodeError(f"candle {view} view is not an object")
    try:
        return PriceBar(o=str(raw["o"]), h=str(raw["h"]), l=str(raw["l"]), c=str(raw["c"]))
    except KeyError as exc:
        raise DecodeError(f"candle {view} view is missing {exc.args[0]!r}") from exc


def _parse_volume(raw: Any) -> int:
    # bool is an int subclass.
    if isinstance(raw, int) and not isinstance(raw, bool) and raw >= 0:
        return raw
    if isinstance(raw, str) and raw.isascii() and raw.isdigit():
        return int(raw)
    raise DecodeError(f"candle volume is not a non-negative integer: {raw!r}")


def parse_candle(raw: Any) -> Candlestick:
    """Build a ``Candlestick`` from one element of the ``candles`` array."""

    if not isinstance(raw, dict):
        raise DecodeError("candle is not an object")

    try:
        time = str(raw["time"])
        raw_volume = raw["volume"]
        complete = raw["complete"]
    except KeyError as exc:
        raise DecodeError(f"candle is missing {exc.args[0]!r}") from exc

    volume = _parse_volume(raw_volume)

    if not isinstance(complete, bool):
        raise DecodeError(f"candle complete flag is not a boolean: {complete!r}")

    try:
        timestamp_ns = parse_timestamp_ns(time)
    except ValueError as exc:
        raise DecodeError(str(exc)) from exc

    return Candlestick(
        time=time,
        timestamp_ns=timestamp_ns,
        volume=volume,
        complete=complete,
        mid=_parse_price_bar(raw.get("mid"), "mid"),
        bid=_parse_price_bar(raw.get("bid"), "bid"),
        ask=_parse_price_bar(raw.get("ask"), "ask"),
    )


def parse_candles_response(payload: Any) -> list[Candlestick]:
    """Extract the ordered candle batch from a candles endpoint response body."""

    if not isinstance(payload, dict):
        raise DecodeError("candles response is not a JSON object")
    candles = payload.get("candles")
    if not isinstance(candles, list):
        raise DecodeError("candles response has no 'candles' array")
    return [parse_candle(raw) for raw in candles]


def emit_record(record: dict[str, Any]) -> None:
    line = json.dumps(record, ensure_ascii=True, separators=(",", ":"))
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


class CandlePoller:
    """Repeatedly fetch a candle window and emit only new or amended bars.

    The window start advances to the time of the last bar in each batch, so the
    next request returns that bar again and amendments to a still-forming bar
    are picked up by ``is_newer`` rather than by narrowing the window.
    """

    def __init__(
        self,
        fetch: CandleFetcher,
        window_start: str,
        *,
        completed_only: bool = False,
        polling_interval_s: float = 5.0,
        emit: RecordEmitter = emit_record,
    ) -> None:
        self.fetch = fetch
        self.cursor = PollCursor(window_start=window_start)
        self.completed_only = completed_only
        self.polling_interval_s = max(0.0, polling_interval_s)
        self.emit = emit

    def process_batch(self, batch: list[Candlestick]) -> list[Candlestick]:
        """Emit the new bars of ``batch`` in order and advance the cursor."""

        last_emitted = self.cursor.last_emitted
        emitted: list[Candlestick] = []
        for candle in batch:
            if self.completed_only and not candle.complete:
                continue
            if not is_newer(candle, last_emitted):
                continue
            self.emit(candle.to_record())
            emitted.append(candle)

        if batch:
            final = batch[-1]
            self.cursor.last_emitted = final
            self.cursor.window_start = final.time
        return emitted

    async def poll_once(self) -> list[Candlestick]:
        batch = await self.fetch(self.cursor.window_start)
        emitted = self.process_batch(batch)
        logger.debug(
            "candles_batch_processed",
            extra={
                "batch_size": len(batch),
                "emitted": len(emitted),
                "window_start": self.cursor.window_start,
            },
        )
        return emitted

    async def run(self, shutdown_event: asyncio.Event) -> int:
        """Poll until ``shutdown_event`` is set; fetch and decode errors propagate."""

        emitted_total = 0
        while not shutdown_event.is_set():
            emitted_total += len(await self.poll_once())
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.polling_interval_s)
            except asyncio.TimeoutError:
                pass
        return emitted_total
