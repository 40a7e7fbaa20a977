"""Candle ordering rule and poller cursor behavior."""

import asyncio
from typing import Any

import pytest

from oanda_cli.core.candles import CandlePoller, is_newer, parse_candle, parse_candles_response
from oanda_cli.core.errors import DecodeError
from oanda_cli.core.types import Candlestick

_T0 = "2024-03-04T10:00:00.000000000Z"
_T5 = "2024-03-04T10:05:00.000000000Z"
_T_EARLIER = "2024-03-04T09:55:00.000000000Z"


def _candle(time: str, complete: bool, volume: int) -> Candlestick:
    return parse_candle(
        {
            "time": time,
            "complete": complete,
            "volume": volume,
            "mid": {"o": "1.08500", "h": "1.08520", "l": "1.08490", "c": "1.08510"},
        }
    )


class _Recorder:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def __call__(self, record: dict[str, Any]) -> None:
        self.records.append(record)


def _poller(
    batches: list[list[Candlestick]], completed_only: bool = False
) -> tuple[CandlePoller, _Recorder, list[str]]:
    recorder = _Recorder()
    requested: list[str] = []
    pending = list(batches)

    async def fetch(from_time: str) -> list[Candlestick]:
        requested.append(from_time)
        return pending.pop(0) if pending else []

    poller = CandlePoller(
        fetch, _T0, completed_only=completed_only, polling_interval_s=0, emit=recorder
    )
    return poller, recorder, requested


@pytest.mark.parametrize(
    ("candidate", "last", "expected"),
    [
        ((False, 5), (False, 3), True),
        ((False, 3), (False, 3), False),
        ((False, 2), (False, 3), False),
        ((True, 3), (False, 3), True),
        ((True, 1), (False, 9), True),
        ((False, 9), (True, 3), False),
        ((True, 9), (True, 3), False),
        ((True, 3), (True, 3), False),
    ],
)
def test_equal_timestamps_follow_completion_and_volume(
    candidate: tuple[bool, int], last: tuple[bool, int], expected: bool
) -> None:
    """Same-time bars are newer only when finalized or when still forming with more volume."""

    assert is_newer(_candle(_T0, *candidate), _candle(_T0, *last)) is expected


@pytest.mark.parametrize("candidate", [(False, 0), (False, 10), (True, 0), (True, 10)])
@pytest.mark.parametrize("last", [(False, 5), (True, 5)])
def test_later_timestamp_is_always_newer(candidate: tuple[bool, int], last: tuple[bool, int]) -> None:
    """A later bar is newer regardless of completeness or volume."""

    assert is_newer(_candle(_T5, *candidate), _candle(_T0, *last)) is True


@pytest.mark.parametrize("candidate", [(False, 0), (False, 10), (True, 0), (True, 10)])
@pytest.mark.parametrize("last", [(False, 5), (True, 5)])
def test_earlier_timestamp_is_never_newer(candidate: tuple[bool, int], last: tuple[bool, int]) -> None:
    """An earlier bar is stale regardless of completeness or volume."""

    assert is_newer(_candle(_T_EARLIER, *candidate), _candle(_T0, *last)) is False


def test_anything_is_newer_than_nothing() -> None:
    """Before the first emission every bar qualifies."""

    assert is_newer(_candle(_T0, False, 0), None) is True


def test_timestamps_compare_by_instant_not_text() -> None:
    """Equivalent instants written with different precision and offset compare equal."""

    a = parse_candle({"time": "2024-03-04T10:00:00Z", "complete": False, "volume": 1})
    b = parse_candle({"time": "2024-03-04T12:00:00.000+02:00", "complete": False, "volume": 2})
    assert a.timestamp_ns == b.timestamp_ns
    assert is_newer(b, a) is True


def test_parse_candle_keeps_optional_views() -> None:
    """Views that were not requested stay absent from the canonical record."""

    candle = parse_candle(
        {
            "time": _T0,
            "complete": True,
            "volume": 7,
            "bid": {"o": "1.1", "h": "1.2", "l": "1.0", "c": "1.15"},
        }
    )
    assert candle.mid is None
    assert candle.to_record() == {
        "complete": True,
        "volume": 7,
        "time": _T0,
        "bid": {"o": "1.1", "h": "1.2", "l": "1.0", "c": "1.15"},
    }


@pytest.mark.parametrize(
    "raw",
    [
        "not-an-object",
        {"complete": True, "volume": 1},
        {"time": _T0, "complete": "yes", "volume": 1},
        {"time": _T0, "complete": True, "volume": "many"},
        {"time": _T0, "complete": True, "volume": True},
        {"time": _T0, "complete": True, "volume": 3.7},
        {"time": _T0, "complete": True, "volume": "3.7"},
        {"time": _T0, "complete": True, "volume": -2},
        {"time": _T0, "complete": True, "volume": "-2"},
        {"time": _T0, "complete": True, "volume": None},
        {"time": "yesterday", "complete": True, "volume": 1},
        {"time": _T0, "complete": True, "volume": 1, "mid": {"o": "1.0"}},
    ],
)
def test_parse_candle_rejects_malformed_input(raw: Any) -> None:
    """Malformed candles surface as DecodeError."""

    with pytest.raises(DecodeError):
        parse_candle(raw)


@pytest.mark.parametrize(("volume", "expected"), [(0, 0), (12, 12), ("12", 12)])
def test_parse_candle_accepts_integer_volume(volume: Any, expected: int) -> None:
    """Volume may arrive as a JSON integer or an integer string."""

    candle = parse_candle({"time": _T0, "complete": True, "volume": volume})
    assert candle.volume == expected


def test_parse_candles_response_requires_candles_array() -> None:
    """A body without a candles array is a decode failure."""

    with pytest.raises(DecodeError):
        parse_candles_response({"instrument": "EUR_USD"})
    assert parse_candles_response({"candles": []}) == []


@pytest.mark.asyncio
async def test_forming_bar_is_reemitted_when_it_completes() -> None:
    """The amended bar is emitted again once complete, followed by the new bar."""

    poller, recorder, requested = _poller(
        [
            [_candle(_T0, False, 3)],
            [_candle(_T0, True, 5), _candle(_T5, False, 1)],
        ]
    )

    await poller.poll_once()
    assert [(r["time"], r["complete"], r["volume"]) for r in recorder.records] == [(_T0, False, 3)]

    await poller.poll_once()
    assert [(r["time"], r["complete"], r["volume"]) for r in recorder.records] == [
        (_T0, False, 3),
        (_T0, True, 5),
        (_T5, False, 1),
    ]
    assert requested == [_T0, _T0]
    assert poller.cursor.window_start == _T5
    assert poller.cursor.last_emitted == _candle(_T5, False, 1)


@pytest.mark.asyncio
async def test_completed_only_suppresses_forming_bars() -> None:
    """Completed-only mode still emits the finalized bar but never a forming one."""

    poller, recorder, _ = _poller(
        [
            [_candle(_T0, False, 3)],
            [_candle(_T0, True, 5), _candle(_T5, False, 1)],
        ],
        completed_only=True,
    )

    await poller.poll_once()
    assert recorder.records == []
    assert poller.cursor.last_emitted == _candle(_T0, False, 3)

    await poller.poll_once()
    assert [(r["time"], r["complete"]) for r in recorder.records] == [(_T0, True)]
    assert poller.cursor.last_emitted == _candle(_T5, False, 1)


@pytest.mark.asyncio
async def test_replayed_complete_candle_is_not_emitted_twice() -> None:
    """The window overlap returns the last bar again; a complete bar stays silent."""

    complete = _candle(_T0, True, 12)
    poller, recorder, _ = _poller([[complete], [complete]])

    await poller.poll_once()
    await poller.poll_once()
    assert len(recorder.records) == 1


@pytest.mark.asyncio
async def test_forming_bar_without_new_volume_is_not_reemitted() -> None:
    """A still-forming bar with unchanged volume is a duplicate."""

    poller, recorder, _ = _poller(
        [[_candle(_T0, False, 4)], [_candle(_T0, False, 4)], [_candle(_T0, False, 6)]]
    )

    for _ in range(3):
        await poller.poll_once()
    assert [r["volume"] for r in recorder.records] == [4, 6]


@pytest.mark.asyncio
async def test_empty_batch_leaves_cursor_untouched() -> None:
    """An empty batch means caught up."""

    poller, recorder, requested = _poller([[_candle(_T0, True, 2)], []])

    await poller.poll_once()
    await poller.poll_once()
    assert len(recorder.records) == 1
    assert requested == [_T0, _T0]
    assert poller.cursor.last_emitted == _candle(_T0, True, 2)


@pytest.mark.asyncio
async def test_run_stops_on_shutdown_event() -> None:
    """The inter-poll sleep is cut short by the shutdown event."""

    shutdown_event = asyncio.Event()
    calls = 0

    async def fetch(from_time: str) -> list[Candlestick]:
        nonlocal calls
        calls += 1
        return [_candle(_T0, False, 1)]

    recorder = _Recorder()
    poller = CandlePoller(fetch, _T0, polling_interval_s=60.0, emit=recorder)
    asyncio.get_running_loop().call_later(0.05, shutdown_event.set)

    emitted = await asyncio.wait_for(poller.run(shutdown_event), timeout=1.0)
    assert emitted == 1
    assert calls == 1


@pytest.mark.asyncio
async def test_run_propagates_fetch_errors() -> None:
    """A failed request aborts the poller."""

    async def fetch(from_time: str) -> list[Candlestick]:
        raise DecodeError("broken body")

    poller = CandlePoller(fetch, _T0, polling_interval_s=0, emit=_Recorder())
    with pytest.raises(DecodeError):
        await poller.run(asyncio.Event())
