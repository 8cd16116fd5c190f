import logging
from datetime import date, datetime
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from onair.models.program import Program, ProgramDraft
from onair.services.errors import DataAccessError
from onair.services.timeline import day_bounds, to_db_time

logger = logging.getLogger(__name__)


class ScheduleStore:
    """Program rows of one table (published or draft), read and replaced per channel.

    Rows are never updated in place. Every replace deletes and inserts inside a
    single transaction so a reader sees either the old set or the new one.
    """

    def __init__(self, db: Session, model=Program) -> None:
        self.db = db
        self.model = model

    def _query(self, channel_id: int):
        return self.db.query(self.model).filter(self.model.channel_id == channel_id)

    def _run(self, description: str, fn):
        try:
            return fn()
        except SQLAlchemyError as exc:
            logger.warning("Schedule store %s failed: %s", description, exc)
            raise DataAccessError(f"{description} failed") from exc

    def _write(self, description: str, fn):
        try:
            result = fn()
            self.db.commit()
            return result
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Schedule store %s failed: %s", description, exc)
            raise DataAccessError(f"{description} failed") from exc

    def started(self, channel_id: int, now: datetime, limit: int) -> list:
        return self._run(
            "started query",
            lambda: self._query(channel_id)
            .filter(self.model.start_time <= to_db_time(now))
            .order_by(self.model.start_time.desc(), self.model.id.desc())
            .limit(limit)
            .all(),
        )

    def upcoming(self, channel_id: int, now: datetime, limit: int) -> list:
        return self._run(
            "upcoming query",
            lambda: self._query(channel_id)
            .filter(self.model.start_time > to_db_time(now))
            .order_by(self.model.start_time.asc(), self.model.id.asc())
            .limit(limit)
            .all(),
        )

    def in_range(self, channel_id: int, start: datetime, end: datetime) -> list:
        return self._run(
            "range query",
            lambda: self._query(channel_id)
            .filter(
                self.model.start_time >= to_db_time(start),
                self.model.start_time <= to_db_time(end),
            )
            .order_by(self.model.start_time.asc(), self.model.id.asc())
            .all(),
        )

    def window(self, start: datetime, end: datetime, channel_ids: Iterable[int] | None = None) -> list:
        def query():
            q = self.db.query(self.model).filter(
                self.model.start_time >= to_db_time(start),
                self.model.start_time <= to_db_time(end),
            )
            if channel_ids is not None:
                q = q.filter(self.model.channel_id.in_(list(channel_ids)))
            return q.order_by(self.model.start_time.asc(), self.model.id.asc()).all()

        return self._run("window query", query)

    def probe(self, limit: int) -> list:
        return self._run(
            "probe query",
            lambda: self.db.query(self.model)
            .order_by(self.model.start_time.asc(), self.model.id.asc())
            .limit(limit)
            .all(),
        )

    def day_rows(self, channel_id: int, day: date) -> list:
        if self.model is ProgramDraft:
            return self._run(
                "draft day query",
                lambda: self._query(channel_id)
                .filter(ProgramDraft.day == day)
                .order_by(ProgramDraft.sort_index.asc(), ProgramDraft.id.asc())
                .all(),
            )
        start, end = day_bounds(day)
        return self._run(
            "day query",
            lambda: self._query(channel_id)
            .filter(
                self.model.start_time >= to_db_time(start),
                self.model.start_time < to_db_time(end),
            )
            .order_by(self.model.start_time.asc(), self.model.id.asc())
            .all(),
        )

    def replace_day(self, channel_id: int, day: date, rows: list) -> list:
        def replace():
            if self.model is ProgramDraft:
                self._query(channel_id).filter(ProgramDraft.day == day).delete(synchronize_session=False)
            else:
                start, end = day_bounds(day)
                self._query(channel_id).filter(
                    self.model.start_time >= to_db_time(start),
                    self.model.start_time < to_db_time(end),
                ).delete(synchronize_session=False)
            self.db.add_all(rows)
            self.db.flush()
            return rows

        return self._write("day replace", replace)

    def replace_range(self, channel_id: int, start: datetime, end: datetime, rows: list) -> list:
        def replace():
            self._query(channel_id).filter(
                self.model.start_time >= to_db_time(start),
                self.model.start_time <= to_db_time(end),
            ).delete(synchronize_session=False)
            self.db.add_all(rows)
            self.db.flush()
            return rows

        return self._write("range replace", replace)

    def insert(self, rows: list) -> list:
        def insert():
            self.db.add_all(rows)
            self.db.flush()
            return rows

        return self._write("insert", insert)

    def delete(self, row) -> None:
        def delete():
            self.db.delete(row)

        self._write("delete", delete)
