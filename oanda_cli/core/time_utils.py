"""Time helpers for the feed's RFC3339 and UNIX timestamp strings."""

import re
from datetime import datetime, timezone

_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>Z|z|[+-]\d{2}:\d{2})$"
)
_UNIX_RE = re.compile(r"^(?P<seconds>\d+)(?:\.(?P<fraction>\d{1,9}))?$")


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as an RFC3339 UTC string with nanosecond precision."""

    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond:06d}000Z"


def _fraction_ns(fraction: str | None) -> int:
    if not fraction:
        return 0
    return int(fraction.ljust(9, "0"))


def parse_timestamp_ns(value: str) -> int:
    """Parse an RFC3339 or UNIX-seconds timestamp into integer nanoseconds since the epoch.

    Sub-microsecond digits are kept, which `datetime` alone would drop.
    """

    text = value.strip()
    unix_match = _UNIX_RE.match(text)
    if unix_match:
        return int(unix_match.group("seconds")) * 1_000_000_000 + _fraction_ns(
            unix_match.group("fraction")
        )

    match = _RFC3339_RE.match(text)
    if match is None:
        raise ValueError(f"unsupported timestamp: {value!r}")

    offset = match.group("offset")
    if offset in ("Z", "z"):
        offset = "+00:00"
    base = datetime.fromisoformat(match.group("base") + offset)
    seconds = int(base.timestamp())
    return seconds * 1_000_000_000 + _fraction_ns(match.group("fraction"))


_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS_S = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration_s(value: str) -> float:
    """Parse ``30``, ``30s``, ``500ms`` or ``1m30s`` into non-negative seconds.

    A bare number is taken as seconds; suffixed forms follow Go's duration syntax.
    """

    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not 0 <= seconds < float("inf"):
            raise ValueError(f"duration must be a finite non-negative number: {value!r}")
        return seconds

    position = 0
    total = 0.0
    for match in _DURATION_PART_RE.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS_S[match.group(2)]
        position = match.end()

    if not text or position != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total
