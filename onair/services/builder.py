import logging
import math
from datetime import date, timedelta
from typing import Any, Mapping, Sequence

from sqlalchemy.orm import Session

from onair.models.channel import Channel
from onair.models.program import Program, ProgramDraft
from onair.services.errors import ChannelNotFoundError, ScheduleValidationError
from onair.services.store import ScheduleStore
from onair.services.timeline import chain_duration, coerce_seconds, day_bounds, start_of, to_db_time, to_utc

logger = logging.getLogger(__name__)


def parse_day(value: Any, field_name: str = "day") -> date:
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if not raw:
        raise ScheduleValidationError(field_name)
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ScheduleValidationError(field_name, f"{field_name} must be YYYY-MM-DD") from exc


def parse_channel_id(value: Any, field_name: str = "channelId") -> int:
    if value is None or isinstance(value, bool) or str(value).strip() == "":
        raise ScheduleValidationError(field_name)
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ScheduleValidationError(field_name, f"{field_name} must be numeric") from exc


def _require_channel(db: Session, channel_id: int) -> Channel:
    channel = db.query(Channel).get(channel_id)
    if not channel:
        raise ChannelNotFoundError(channel_id)
    return channel


def _stored_duration(value: Any) -> float | None:
    # Authored value is kept as is; only non-numbers become NULL.
    return coerce_seconds(value)


def _sort_index(segment: Mapping) -> float:
    raw = segment.get("sortIndex")
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        number = float(str(raw).strip())
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def chain_segments(base_time, segments: Sequence[Mapping]) -> list[dict]:
    """Give every segment an absolute start by walking a clock from ``base_time``.

    Segments are ordered by ``sortIndex`` (missing counts as 0, ties keep their
    input order). A missing or invalid duration still gets a start but does not
    advance the clock.
    """
    clock = to_utc(base_time)
    ordered = sorted(enumerate(segments), key=lambda pair: (_sort_index(pair[1]), pair[0]))
    chained: list[dict] = []
    for position, (_, segment) in enumerate(ordered):
        chained.append(
            {
                "sort_index": position,
                "start_time": clock,
                "duration": _stored_duration(segment.get("durationSeconds")),
                "title": (str(segment.get("title") or "").strip() or None),
                "media_ref": str(segment.get("mediaRef") or "").strip(),
                "poster_ref": (str(segment.get("posterRef") or "").strip() or None),
            }
        )
        clock = clock + timedelta(seconds=chain_duration(segment.get("durationSeconds")))
    return chained


def validate_draft_request(payload: Mapping) -> tuple[int, date, Any, list]:
    for key in ("channelId", "day", "baseTimeUtc", "rows"):
        if payload.get(key) in (None, ""):
            raise ScheduleValidationError(key)
    channel_id = parse_channel_id(payload.get("channelId"))
    day = parse_day(payload.get("day"))
    base_time = to_utc(payload.get("baseTimeUtc"))
    if base_time is None:
        raise ScheduleValidationError("baseTimeUtc", "baseTimeUtc must be an ISO-8601 instant")
    rows = payload.get("rows")
    if not isinstance(rows, list):
        raise ScheduleValidationError("rows", "rows must be a list")
    for index, segment in enumerate(rows):
        if not isinstance(segment, Mapping):
            raise ScheduleValidationError(f"rows[{index}]", f"rows[{index}] must be an object")
        for key in ("mediaRef", "durationSeconds"):
            if key not in segment:
                raise ScheduleValidationError(f"rows[{index}].{key}")
    return channel_id, day, base_time, rows


def build_draft_day(db: Session, payload: Mapping) -> int:
    channel_id, day, base_time, segments = validate_draft_request(payload)
    _require_channel(db, channel_id)
    drafts = [
        ProgramDraft(
            channel_id=channel_id,
            day=day,
            sort_index=item["sort_index"],
            start_time=to_db_time(item["start_time"]),
            duration=item["duration"],
            title=item["title"],
            media_ref=item["media_ref"],
            poster_ref=item["poster_ref"],
        )
        for item in chain_segments(base_time, segments)
    ]
    ScheduleStore(db, ProgramDraft).replace_day(channel_id, day, drafts)
    logger.info("Draft for channel %s on %s replaced with %d rows", channel_id, day, len(drafts))
    return len(drafts)


def list_draft_day(db: Session, channel_id: int, day: date) -> list[ProgramDraft]:
    return ScheduleStore(db, ProgramDraft).day_rows(channel_id, day)


def load_from_published(db: Session, channel_id: int, day: date) -> int:
    _require_channel(db, channel_id)
    published = ScheduleStore(db, Program).day_rows(channel_id, day)
    drafts = [
        ProgramDraft(
            channel_id=channel_id,
            day=day,
            sort_index=index,
            start_time=row.start_time,
            duration=row.duration,
            title=row.title,
            media_ref=row.media_ref,
            poster_ref=row.poster_ref,
        )
        for index, row in enumerate(published)
    ]
    ScheduleStore(db, ProgramDraft).replace_day(channel_id, day, drafts)
    logger.info("Copied %d published rows into the draft of channel %s on %s", len(drafts), channel_id, day)
    return len(drafts)


def publish_day(db: Session, channel_id: int, day: date) -> int:
    _require_channel(db, channel_id)
    drafts = ScheduleStore(db, ProgramDraft).day_rows(channel_id, day)
    day_start, day_end = day_bounds(day)
    lower = day_start
    upper = day_end - timedelta(microseconds=1)
    for draft in drafts:
        draft_start = start_of(draft)
        lower = min(lower, draft_start)
        upper = max(upper, draft_start)
    programs = [
        Program(
            channel_id=channel_id,
            start_time=draft.start_time,
            duration=draft.duration,
            title=draft.title,
            media_ref=draft.media_ref,
            poster_ref=draft.poster_ref,
        )
        for draft in drafts
    ]
    ScheduleStore(db, Program).replace_range(channel_id, lower, upper, programs)
    logger.info("Published %d rows for channel %s on %s", len(programs), channel_id, day)
    return len(programs)
