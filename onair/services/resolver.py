import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from onair.services.errors import DataAccessError
from onair.services.timeline import (
    LIVE_DRIFT_SEC,
    has_media,
    is_live,
    live_feed_program,
    pick_live,
    program_payload,
    progress,
    standby_program,
    start_of,
    to_utc,
)

logger = logging.getLogger(__name__)

STARTED_FETCH_LIMIT = int(os.getenv("ONAIR_STARTED_FETCH_LIMIT", "12"))
UPCOMING_FETCH_LIMIT = int(os.getenv("ONAIR_UPCOMING_FETCH_LIMIT", "6"))

KIND_LIVE_FEED = "live_feed"
KIND_LIVE = "live"
KIND_NEXT_SCHEDULED = "next_scheduled"
KIND_STALE_FALLBACK = "stale_fallback"
KIND_STANDBY = "standby"


@dataclass
class Resolution:
    channel_id: Any
    program: Any
    kind: str
    resolved_at: datetime
    upcoming: list = field(default_factory=list)
    error: str | None = None

    @property
    def next_program(self) -> Any | None:
        chosen_start = start_of(self.program)
        for row in self.upcoming:
            if row is self.program:
                continue
            row_start = start_of(row)
            if row_start is None or (chosen_start is not None and row_start <= chosen_start):
                continue
            if row_start > self.resolved_at:
                return row
        return None

    def to_payload(self) -> dict:
        percent, finished = progress(self.program, self.resolved_at)
        next_row = self.next_program
        return {
            "channel_id": self.channel_id,
            "kind": self.kind,
            "now": self.resolved_at.isoformat().replace("+00:00", "Z"),
            "program": program_payload(self.program),
            "progress_percent": round(percent, 2),
            "is_finished": finished,
            "next": program_payload(next_row) if next_row is not None else None,
            "upcoming": [program_payload(row) for row in self.upcoming],
            "error": self.error,
        }


def _kind_for(row: Any, now: datetime, drift_sec: float) -> str:
    if is_live(row, now, drift_sec):
        return KIND_LIVE
    start = start_of(row)
    if start is not None and start > now:
        return KIND_NEXT_SCHEDULED
    return KIND_STALE_FALLBACK


def choose_program(started: list, upcoming: list, now: datetime, drift_sec: float = LIVE_DRIFT_SEC) -> tuple[Any | None, str]:
    """Pick the on-air row from the started (newest first) and upcoming (soonest first) sets.

    Order of preference: a live row, the next scheduled row, the most recent
    started row even if it has ended. A choice without media is swapped for
    the first row that has some; None means standby.
    """
    now = to_utc(now)
    chosen = pick_live(started, now, drift_sec)
    kind = KIND_LIVE
    if chosen is None and upcoming:
        chosen, kind = upcoming[0], KIND_NEXT_SCHEDULED
    if chosen is None and started:
        chosen, kind = started[0], KIND_STALE_FALLBACK

    if chosen is None or not has_media(chosen):
        playable = next((row for row in [*started, *upcoming] if has_media(row)), None)
        if playable is None:
            return None, KIND_STANDBY
        logger.debug("Skipping row without media, using %s instead", getattr(playable, "id", None))
        return playable, _kind_for(playable, now, drift_sec)
    return chosen, kind


def resolve_now(
    store,
    channel: Any,
    now: datetime,
    drift_sec: float = LIVE_DRIFT_SEC,
    started_limit: int = STARTED_FETCH_LIMIT,
    upcoming_limit: int = UPCOMING_FETCH_LIMIT,
) -> Resolution:
    now = to_utc(now)
    channel_id = channel.id if not isinstance(channel, dict) else channel["id"]
    always_live = channel.always_live if not isinstance(channel, dict) else channel.get("always_live")

    if always_live:
        return Resolution(channel_id, live_feed_program(channel, now), KIND_LIVE_FEED, now)

    try:
        started = store.started(channel_id, now, started_limit)
        upcoming = store.upcoming(channel_id, now, upcoming_limit)
    except DataAccessError as exc:
        logger.warning("Resolution for channel %s degraded to standby: %s", channel_id, exc)
        return Resolution(
            channel_id,
            standby_program(channel_id, now),
            KIND_STANDBY,
            now,
            error="Schedule temporarily unavailable",
        )

    chosen, kind = choose_program(started, upcoming, now, drift_sec)
    if chosen is None:
        logger.debug("Channel %s has nothing to air, using standby", channel_id)
        return Resolution(channel_id, standby_program(channel_id, now), KIND_STANDBY, now, upcoming=upcoming)
    return Resolution(channel_id, chosen, kind, now, upcoming=upcoming)
