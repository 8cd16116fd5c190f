"""Time and duration rules shared by the resolver, the guide and the client.

Everything here is pure: rows come in as ORM objects, dicts or anything with
``start_time``/``duration``/``media_ref`` attributes, and nothing touches the
database. The resolver and the guide must pick "current" through
``pick_live`` so both answer the same question the same way.
"""

import math
import os
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Sequence

DEFAULT_DURATION_SEC = float(os.getenv("ONAIR_DEFAULT_DURATION_SEC", "1800"))
MAX_DURATION_SEC = 86400.0
LIVE_DRIFT_SEC = float(os.getenv("ONAIR_LIVE_DRIFT_SEC", "60"))
STANDBY_DURATION_SEC = 300
STANDBY_PROGRAM_ID = "standby"
STANDBY_TITLE = "Standby Programming"
STANDBY_FILENAME = (os.getenv("ONAIR_STANDBY_FILENAME", "standby.mp4") or "standby.mp4").strip()
LIVE_FEED_DURATION_SEC = MAX_DURATION_SEC

_CLOCK_RE = re.compile(r"^(\d{1,3}):([0-5]?\d)(?::([0-5]?\d))?$")
_NAIVE_SPACE_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Any) -> datetime | None:
    """Read a start time as an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC, which is how the store
    keeps them), dates, and ISO-ish strings with ``Z``, an offset, or no zone
    at all. Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time(0, 0), tzinfo=timezone.utc)
    raw = str(value).strip()
    if not raw:
        return None
    if _NAIVE_SPACE_RE.match(raw):
        raw = raw.replace(" ", "T", 1)
    if raw[-1] in {"z", "Z"}:
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_db_time(value: datetime) -> datetime:
    """Naive UTC, the shape the ``start_time`` columns hold."""
    aware = to_utc(value)
    if aware is None:
        raise ValueError(f"Invalid instant: {value!r}")
    return aware.replace(tzinfo=None)


def iso_utc(value: Any) -> str | None:
    parsed = to_utc(value)
    if parsed is None:
        return None
    return parsed.isoformat().replace("+00:00", "Z")


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def coerce_seconds(value: Any) -> float | None:
    """Best-effort read of an authored duration; None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    raw = str(value).strip()
    if not raw:
        return None
    match = _CLOCK_RE.match(raw)
    if match:
        if match.group(3) is not None:
            hours, minutes, seconds = int(match.group(1)), int(match.group(2)), int(match.group(3))
        else:
            hours, minutes, seconds = 0, int(match.group(1)), int(match.group(2))
        return float(hours * 3600 + minutes * 60 + seconds)
    try:
        return float(raw)
    except ValueError:
        return None


def is_valid_duration(value: Any) -> bool:
    seconds = coerce_seconds(value)
    return seconds is not None and math.isfinite(seconds) and 0 < seconds <= MAX_DURATION_SEC


def normalize_duration(value: Any, default: float = DEFAULT_DURATION_SEC) -> float:
    seconds = coerce_seconds(value)
    if seconds is None or not math.isfinite(seconds) or seconds <= 0 or seconds > MAX_DURATION_SEC:
        return default
    return seconds


def chain_duration(value: Any) -> float:
    """Duration used to advance the authoring clock: invalid counts as zero."""
    seconds = coerce_seconds(value)
    if seconds is None or not math.isfinite(seconds) or seconds <= 0:
        return 0.0
    return seconds


def field(row: Any, name: str, default: Any = None) -> Any:
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


def start_of(row: Any) -> datetime | None:
    return to_utc(field(row, "start_time"))


def end_of(row: Any) -> datetime | None:
    start = start_of(row)
    if start is None:
        return None
    return start + timedelta(seconds=normalize_duration(field(row, "duration")))


def has_media(row: Any) -> bool:
    return bool(str(field(row, "media_ref") or "").strip())


def is_live(row: Any, now: datetime, drift_sec: float = LIVE_DRIFT_SEC) -> bool:
    start = start_of(row)
    if start is None:
        return False
    end = start + timedelta(seconds=normalize_duration(field(row, "duration")))
    drift = timedelta(seconds=drift_sec)
    now = to_utc(now)
    return now + drift >= start and now < end + drift


def pick_live(rows_newest_first: Iterable[Any], now: datetime, drift_sec: float = LIVE_DRIFT_SEC) -> Any | None:
    """First live row scanning newest start first, so the later start wins overlaps."""
    for row in rows_newest_first:
        if is_live(row, now, drift_sec):
            return row
    return None


def pick_current(rows_ascending: Sequence[Any], now: datetime, drift_sec: float = LIVE_DRIFT_SEC) -> Any | None:
    """Guide flavour of ``pick_live``: live row, else the latest row at or before now."""
    newest_first = list(reversed(rows_ascending))
    live = pick_live(newest_first, now, drift_sec)
    if live is not None:
        return live
    now = to_utc(now)
    for row in newest_first:
        start = start_of(row)
        if start is not None and start <= now:
            return row
    return None


def progress(row: Any, now: datetime) -> tuple[float, bool]:
    start = start_of(row)
    if start is None:
        return 0.0, False
    duration = normalize_duration(field(row, "duration"))
    elapsed = (to_utc(now) - start).total_seconds()
    percent = max(0.0, min(100.0, elapsed / duration * 100.0))
    return percent, percent >= 100.0


def canonical_media_key(media_ref: str | None) -> str:
    """Media identity without query string or fragment, so re-signed URLs match."""
    raw = (media_ref or "").strip()
    return raw.split("#", 1)[0].split("?", 1)[0]


def standby_media_ref(channel_id: Any) -> str:
    return f"channel{channel_id}/{STANDBY_FILENAME}"


@dataclass
class SyntheticProgram:
    id: str
    channel_id: Any
    title: str
    media_ref: str
    start_time: datetime
    duration: float
    poster_ref: str | None = None


def standby_program(channel_id: Any, now: datetime | None = None) -> SyntheticProgram:
    return SyntheticProgram(
        id=STANDBY_PROGRAM_ID,
        channel_id=channel_id,
        title=STANDBY_TITLE,
        media_ref=standby_media_ref(channel_id),
        start_time=to_utc(now) if now is not None else utc_now(),
        duration=STANDBY_DURATION_SEC,
    )


def live_feed_program(channel: Any, now: datetime | None = None) -> SyntheticProgram:
    channel_id = field(channel, "id")
    name = field(channel, "name")
    feed = str(field(channel, "live_feed_ref") or "").strip() or f"live:{channel_id}"
    return SyntheticProgram(
        id=f"live-{channel_id}",
        channel_id=channel_id,
        title=f"{name} Live" if name else "Live Broadcast",
        media_ref=feed,
        start_time=to_utc(now) if now is not None else utc_now(),
        duration=LIVE_FEED_DURATION_SEC,
    )


def program_payload(row: Any) -> dict:
    start = start_of(row)
    end = end_of(row)
    row_id = field(row, "id")
    return {
        "id": row_id if isinstance(row_id, str) else (int(row_id) if row_id is not None else None),
        "channel_id": field(row, "channel_id"),
        "title": field(row, "title"),
        "media_ref": field(row, "media_ref"),
        "media_key": canonical_media_key(field(row, "media_ref")),
        "poster_ref": field(row, "poster_ref"),
        "start_time": iso_utc(start),
        "end_time": iso_utc(end),
        "duration": normalize_duration(field(row, "duration")),
    }


def _natural_parts(value: str) -> tuple:
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in re.split(r"(\d+)", value)
        if part
    )


def channel_sort_key(channel_id: Any) -> tuple:
    """Numeric ids sort numerically and ahead of the rest; others sort naturally."""
    raw = str(channel_id if channel_id is not None else "").strip()
    try:
        return (0, float(raw), ())
    except ValueError:
        return (1, 0.0, _natural_parts(raw))
