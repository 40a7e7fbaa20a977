"""Line-delimited live feed consumer with heartbeat liveness monitoring.

A live feed is one long HTTP response that carries a JSON object per line. Each
line is classified by its ``type`` field as payload, heartbeat or skipped;
payload lines are echoed byte-for-byte to stdout. When a heartbeat timeout is
configured, a watchdog task runs alongside the reader for exactly the lifetime
of one ``consume_stream`` call and raises ``LivenessFailure`` if heartbeats
stop arriving.
"""

import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterable, Callable

from oanda_cli.core.errors import DecodeError, LivenessFailure
from oanda_cli.core.types import LineKind

Classifier = Callable[[str], LineKind]
LineEmitter = Callable[[bytes], None]

_HEARTBEAT_TYPE = "HEARTBEAT"
_PRICE_TYPE = "PRICE"

logger = logging.getLogger(__name__)


def classify_pricing(line_type: str) -> LineKind:
    """Pricing stream: only PRICE lines are payload, other non-heartbeat types are dropped."""

    if line_type == _PRICE_TYPE:
        return LineKind.PAYLOAD
    if line_type == _HEARTBEAT_TYPE:
        return LineKind.HEARTBEAT
    return LineKind.SKIP


def classify_transaction(line_type: str) -> LineKind:
    """Transaction stream: every transaction type is payload."""

    if line_type == _HEARTBEAT_TYPE:
        return LineKind.HEARTBEAT
    return LineKind.PAYLOAD


def _strip_newline(line: bytes) -> bytes:
    return line.rstrip(b"\r\n")


def decode_envelope(line: bytes) -> str:
    """Return the ``type`` discriminant of one stream line without validating the rest."""

    try:
        payload = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"stream line is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError("stream line is not a JSON object")

    line_type = payload.get("type")
    if not isinstance(line_type, str):
        raise DecodeError("stream line has no string 'type' field")
    return line_type


def emit_line(line: bytes) -> None:
    """Write one raw record to stdout and flush so downstream readers see it immediately."""

    sys.stdout.buffer.write(line + b"\n")
    sys.stdout.flush()


class HeartbeatWatchdog:
    """Single-deadline liveness timer re-armed by every heartbeat.

    The deadline starts when ``run`` starts. ``notify`` returns only after
    ``run`` has taken the heartbeat and re-armed the deadline, so the reader
    never runs ahead of the timer it feeds.
    """

    def __init__(self, timeout_s: float) -> None:
        if timeout_s <= 0:
            raise ValueError("heartbeat timeout must be positive")
        self.timeout_s = timeout_s
        self._signals: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

    async def notify(self) -> None:
        await self._signals.put(None)
        await self._signals.join()

    async def run(self) -> None:
        """Wait for heartbeats forever; raise ``LivenessFailure`` when one is late."""

        while True:
            try:
                await asyncio.wait_for(self._signals.get(), timeout=self.timeout_s)
            except asyncio.TimeoutError:
                logger.error("heartbeat_timeout", extra={"timeout_s": self.timeout_s})
                raise LivenessFailure(self.timeout_s) from None
            self._signals.task_done()


async def _read_lines(
    lines: AsyncIterable[bytes],
    classifier: Classifier,
    print_heartbeats: bool,
    watchdog: HeartbeatWatchdog | None,
    emit: LineEmitter,
) -> int:
    emitted = 0
    async for raw_line in lines:
        line = _strip_newline(raw_line)
        kind = classifier(decode_envelope(line))

        if kind is LineKind.HEARTBEAT:
            if watchdog is not None:
                await watchdog.notify()
            if print_heartbeats:
                emit(line)
                emitted += 1
        elif kind is LineKind.PAYLOAD:
            emit(line)
            emitted += 1

    return emitted


async def consume_stream(
    lines: AsyncIterable[bytes],
    classifier: Classifier,
    *,
    print_heartbeats: bool = False,
    heartbeat_timeout_s: float = 0.0,
    emit: LineEmitter = emit_line,
) -> int:
    """Read ``lines`` until end of stream and return how many lines were emitted.

    Raises ``DecodeError`` on a malformed line and ``LivenessFailure`` when the
    watchdog fires. A non-positive ``heartbeat_timeout_s`` disables the watchdog.
    """

    if heartbeat_timeout_s <= 0:
        return await _read_lines(lines, classifier, print_heartbeats, None, emit)

    watchdog = HeartbeatWatchdog(heartbeat_timeout_s)
    watchdog_task = asyncio.create_task(watchdog.run(), name="heartbeat-watchdog")
    reader_task = asyncio.create_task(
        _read_lines(lines, classifier, print_heartbeats, watchdog, emit),
        name="stream-reader",
    )
    try:
        await asyncio.wait({watchdog_task, reader_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (reader_task, watchdog_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(reader_task, watchdog_task, return_exceptions=True)

    if reader_task.done() and not reader_task.cancelled():
        return reader_task.result()
    # The reader was cancelled, so the watchdog is the task that finished.
    watchdog_task.result()
    raise LivenessFailure(heartbeat_timeout_s)
