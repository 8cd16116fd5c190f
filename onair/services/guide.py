import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from onair.models.channel import Channel
from onair.models.program import Program
from onair.services.errors import DataAccessError
from onair.services.store import ScheduleStore
from onair.services.timeline import (
    MAX_DURATION_SEC,
    channel_sort_key,
    end_of,
    live_feed_program,
    pick_current,
    program_payload,
    start_of,
    to_utc,
)

logger = logging.getLogger(__name__)

DEFAULT_LOOK_BACK_HOURS = float(os.getenv("ONAIR_GUIDE_LOOK_BACK_HOURS", "6"))
DEFAULT_LOOK_AHEAD_HOURS = float(os.getenv("ONAIR_GUIDE_LOOK_AHEAD_HOURS", "6"))
MAX_WINDOW_HOURS = 48
PROBE_LIMIT = int(os.getenv("ONAIR_GUIDE_PROBE_LIMIT", "1000"))

STATUS_LIVE_FEED = "live_feed"
STATUS_ON = "on"
STATUS_UPCOMING = "upcoming"
STATUS_IDLE = "idle"


@dataclass
class GuideRow:
    channel: Any
    current: Any | None
    next: Any | None
    later: Any | None
    status: str

    def to_payload(self) -> dict:
        return {
            "channel_id": self.channel.id,
            "channel_name": self.channel.name,
            "slug": self.channel.slug,
            "logo_ref": self.channel.logo_ref,
            "status": self.status,
            "current": program_payload(self.current) if self.current is not None else None,
            "next": program_payload(self.next) if self.next is not None else None,
            "later": program_payload(self.later) if self.later is not None else None,
        }


def _overlaps(row: Any, window_start: datetime, window_end: datetime) -> bool:
    start = start_of(row)
    if start is None:
        return False
    return start < window_end and end_of(row) > window_start


def _fetch_rows(store: ScheduleStore, window_start: datetime, window_end: datetime, channel_ids: list) -> list:
    # Reach back one maximum duration so shows already running at window start are seen.
    slice_start = window_start - timedelta(seconds=MAX_DURATION_SEC)
    rows = [row for row in store.window(slice_start, window_end, channel_ids) if _overlaps(row, window_start, window_end)]
    if rows:
        return rows
    # Start times stored without zone info can miss the window query entirely.
    logger.debug("Guide window query returned nothing, probing up to %d rows", PROBE_LIMIT)
    wanted = set(channel_ids)
    return [
        row
        for row in store.probe(PROBE_LIMIT)
        if row.channel_id in wanted and _overlaps(row, window_start, window_end)
    ]


def project_channel(channel: Any, rows: list, now: datetime) -> GuideRow:
    """Current/next/later for one channel; ``rows`` must be sorted by start."""
    now = to_utc(now)
    ordered = sorted(
        (row for row in rows if start_of(row) is not None),
        key=lambda row: (start_of(row), getattr(row, "id", 0) or 0),
    )

    if channel.always_live:
        following = [row for row in ordered if start_of(row) > now]
        return GuideRow(
            channel,
            live_feed_program(channel, now),
            following[0] if following else None,
            following[1] if len(following) > 1 else None,
            STATUS_LIVE_FEED,
        )

    current = pick_current(ordered, now)
    after = ordered
    if current is not None:
        position = next(i for i, row in enumerate(ordered) if row is current)
        after = ordered[position + 1:]

    next_row = None
    later_row = None
    for index, row in enumerate(after):
        if start_of(row) > now:
            next_row = row
            later_row = after[index + 1] if index + 1 < len(after) else None
            break

    if current is not None:
        status = STATUS_ON
    elif next_row is not None:
        status = STATUS_UPCOMING
    else:
        status = STATUS_IDLE
    return GuideRow(channel, current, next_row, later_row, status)


def project_guide(
    db: Session,
    now: datetime,
    look_back_hours: float = DEFAULT_LOOK_BACK_HOURS,
    look_ahead_hours: float = DEFAULT_LOOK_AHEAD_HOURS,
) -> list[GuideRow]:
    now = to_utc(now)
    look_back_hours = max(0.0, min(float(look_back_hours), MAX_WINDOW_HOURS))
    look_ahead_hours = max(0.0, min(float(look_ahead_hours), MAX_WINDOW_HOURS))
    window_start = now - timedelta(hours=look_back_hours)
    window_end = now + timedelta(hours=look_ahead_hours)

    try:
        channels = db.query(Channel).filter(Channel.is_active.is_(True)).all()
    except SQLAlchemyError as exc:
        raise DataAccessError("channel query failed") from exc
    channels.sort(key=lambda channel: channel_sort_key(channel.id))
    if not channels:
        return []

    rows = _fetch_rows(ScheduleStore(db, Program), window_start, window_end, [c.id for c in channels])
    by_channel: dict[Any, list] = {}
    for row in rows:
        by_channel.setdefault(row.channel_id, []).append(row)

    return [project_channel(channel, by_channel.get(channel.id, []), now) for channel in channels]
