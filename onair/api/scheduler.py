from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from onair.api.common import require_admin, to_http_error
from onair.db import get_db
from onair.schemas.program import ProgramDraftOut
from onair.services.builder import (
    build_draft_day,
    list_draft_day,
    load_from_published,
    parse_channel_id,
    parse_day,
    publish_day,
)
from onair.services.errors import ChannelNotFoundError, DataAccessError, ScheduleValidationError

router = APIRouter(prefix="/scheduler", tags=["scheduler"])

_SERVICE_ERRORS = (ScheduleValidationError, ChannelNotFoundError, DataAccessError)


def _channel_and_day(payload: dict[str, Any]) -> tuple[int, Any]:
    if payload.get("channelId") in (None, "") or payload.get("day") in (None, ""):
        raise HTTPException(status_code=400, detail="channelId and day are required")
    try:
        return parse_channel_id(payload.get("channelId")), parse_day(payload.get("day"))
    except ScheduleValidationError as exc:
        raise to_http_error(exc) from exc


@router.get("/draft")
def get_draft(channelId: str | None = None, day: str | None = None, db: Session = Depends(get_db)):
    channel_id, parsed_day = _channel_and_day({"channelId": channelId, "day": day})
    try:
        rows = list_draft_day(db, channel_id, parsed_day)
    except DataAccessError as exc:
        raise to_http_error(exc) from exc
    return {
        "ok": True,
        "rows": [ProgramDraftOut.model_validate(row).model_dump(mode="json") for row in rows],
    }


@router.post("/draft", dependencies=[Depends(require_admin)])
def save_draft(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        count = build_draft_day(db, payload)
    except _SERVICE_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"ok": True, "count": count}


@router.post("/load-from-published", dependencies=[Depends(require_admin)])
def copy_published_to_draft(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    channel_id, day = _channel_and_day(payload)
    try:
        copied = load_from_published(db, channel_id, day)
    except _SERVICE_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"ok": True, "copied": copied}


@router.post("/publish", dependencies=[Depends(require_admin)])
def publish_draft(payload: dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    channel_id, day = _channel_and_day(payload)
    try:
        published = publish_day(db, channel_id, day)
    except _SERVICE_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"ok": True, "published": published}
