from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from onair.api.common import require_admin, to_http_error
from onair.db import get_db
from onair.models.channel import Channel
from onair.models.program import Program
from onair.schemas.program import ProgramOut
from onair.services.errors import ChannelNotFoundError, DataAccessError, ScheduleValidationError
from onair.services.roll_forward import roll_forward
from onair.services.store import ScheduleStore
from onair.services.timeline import coerce_seconds, to_db_time, to_utc

router = APIRouter(prefix="/programs", tags=["programs"])


def _parse_instant(value: str | None, field_name: str):
    if value is None:
        return None
    parsed = to_utc(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {field_name}. Use an ISO-8601 date or instant.")
    return parsed


@router.get("", response_model=list[ProgramOut])
def list_programs(
    channel_id: int | None = None,
    from_: str | None = Query(None, alias="from"),
    to: str | None = None,
    db: Session = Depends(get_db),
):
    start = _parse_instant(from_, "from")
    end = _parse_instant(to, "to")
    query = db.query(Program)
    if channel_id is not None:
        query = query.filter(Program.channel_id == channel_id)
    if start is not None:
        query = query.filter(Program.start_time >= to_db_time(start))
    if end is not None:
        query = query.filter(Program.start_time <= to_db_time(end))
    return query.order_by(Program.start_time.asc(), Program.id.asc()).all()


@router.post("", response_model=ProgramOut, dependencies=[Depends(require_admin)])
def create_program(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    missing = [key for key in ("channel_id", "media_ref", "start_time", "duration") if payload.get(key) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")
    start = _parse_instant(str(payload["start_time"]), "start_time")
    try:
        channel_id = int(str(payload["channel_id"]).strip())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="channel_id must be numeric") from exc
    if not db.query(Channel).get(channel_id):
        raise HTTPException(status_code=404, detail="Channel not found")
    program = Program(
        channel_id=channel_id,
        start_time=to_db_time(start),
        duration=coerce_seconds(payload.get("duration")),
        title=(str(payload.get("title") or "").strip() or None),
        media_ref=str(payload["media_ref"]).strip(),
        poster_ref=(str(payload.get("poster_ref") or "").strip() or None),
    )
    try:
        ScheduleStore(db, Program).insert([program])
    except DataAccessError as exc:
        raise to_http_error(exc) from exc
    db.refresh(program)
    return program


@router.delete("/{program_id}", dependencies=[Depends(require_admin)])
def delete_program(program_id: int, db: Session = Depends(get_db)):
    program = db.query(Program).get(program_id)
    if not program:
        raise HTTPException(status_code=404, detail="Program not found")
    try:
        ScheduleStore(db, Program).delete(program)
    except DataAccessError as exc:
        raise to_http_error(exc) from exc
    return {"ok": True}


@router.post("/roll-forward", dependencies=[Depends(require_admin)])
def roll_forward_programs(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    missing = [key for key in ("channel_id", "from", "to", "add_days") if payload.get(key) in (None, "")]
    if missing:
        raise HTTPException(status_code=400, detail=f"{', '.join(missing)} required")
    try:
        inserted, rows = roll_forward(
            db,
            payload.get("channel_id"),
            payload.get("from"),
            payload.get("to"),
            payload.get("add_days"),
            replace_dates=bool(payload.get("replace_dates", False)),
        )
    except (ScheduleValidationError, ChannelNotFoundError, DataAccessError) as exc:
        raise to_http_error(exc) from exc
    return {
        "inserted": inserted,
        "programs": [ProgramOut.model_validate(row).model_dump(mode="json") for row in rows],
    }
