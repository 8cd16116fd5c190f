import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from onair.models.channel import Channel
from onair.models.program import Program
from onair.services.builder import parse_channel_id
from onair.services.errors import ChannelNotFoundError, ScheduleValidationError
from onair.services.store import ScheduleStore
from onair.services.timeline import start_of, to_db_time, to_utc

logger = logging.getLogger(__name__)

MS_PER_DAY = 24 * 3600 * 1000


def _parse_add_days(value: Any) -> int:
    if value is None or isinstance(value, bool) or str(value).strip() == "":
        raise ScheduleValidationError("add_days")
    try:
        number = float(str(value).strip())
    except ValueError as exc:
        raise ScheduleValidationError("add_days", "add_days must be a whole number of days") from exc
    if not number.is_integer():
        raise ScheduleValidationError("add_days", "add_days must be a whole number of days")
    if number == 0:
        raise ScheduleValidationError("add_days", "add_days must not be 0")
    return int(number)


def roll_forward(
    db: Session,
    channel_id: Any,
    source_from: Any,
    source_to: Any,
    add_days: Any,
    replace_dates: bool = False,
) -> tuple[int, list[Program]]:
    """Copy the rows starting in [source_from, source_to] forward by ``add_days``.

    Starts are translated, never re-chained, so gaps and overlaps of the source
    window carry over exactly. With ``replace_dates`` the rows already in the
    target span are deleted first, in the same transaction as the insert, which
    makes re-runs idempotent. Without it every run adds another copy.
    """
    channel_id = parse_channel_id(channel_id, "channel_id")
    window_from = to_utc(source_from)
    if window_from is None:
        raise ScheduleValidationError("from")
    window_to = to_utc(source_to)
    if window_to is None:
        raise ScheduleValidationError("to")
    if window_from > window_to:
        raise ScheduleValidationError("from", "from must not be after to")
    days = _parse_add_days(add_days)

    if not db.query(Channel).get(channel_id):
        raise ChannelNotFoundError(channel_id)

    store = ScheduleStore(db, Program)
    source = store.in_range(channel_id, window_from, window_to)
    if not source:
        return 0, []

    offset = timedelta(milliseconds=days * MS_PER_DAY)
    rows = [
        Program(
            channel_id=channel_id,
            start_time=to_db_time(start_of(row) + offset),
            duration=row.duration,
            title=row.title,
            media_ref=row.media_ref,
            poster_ref=row.poster_ref,
        )
        for row in source
    ]

    if replace_dates:
        target_min = start_of(rows[0])
        target_max = start_of(rows[-1])
        store.replace_range(channel_id, target_min, target_max, rows)
    else:
        logger.warning(
            "Additive roll-forward for channel %s (%d rows, %+d days); existing rows are kept and may be duplicated",
            channel_id,
            len(rows),
            days,
        )
        store.insert(rows)

    logger.info("Rolled %d rows of channel %s forward by %d days", len(rows), channel_id, days)
    return len(rows), rows
