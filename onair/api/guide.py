from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from onair.db import get_db
from onair.services.errors import DataAccessError
from onair.services.guide import DEFAULT_LOOK_AHEAD_HOURS, DEFAULT_LOOK_BACK_HOURS, MAX_WINDOW_HOURS, project_guide
from onair.services.timeline import utc_now

router = APIRouter(prefix="/guide", tags=["guide"])


@router.get("")
def guide(
    look_back_hours: float = DEFAULT_LOOK_BACK_HOURS,
    look_ahead_hours: float = DEFAULT_LOOK_AHEAD_HOURS,
    db: Session = Depends(get_db),
):
    if look_back_hours < 0 or look_ahead_hours < 0:
        raise HTTPException(status_code=400, detail="Window hours must not be negative")
    if look_back_hours > MAX_WINDOW_HOURS or look_ahead_hours > MAX_WINDOW_HOURS:
        raise HTTPException(status_code=400, detail=f"Window hours max {MAX_WINDOW_HOURS}")
    now = utc_now()
    try:
        rows = project_guide(db, now, look_back_hours, look_ahead_hours)
    except DataAccessError as exc:
        raise HTTPException(status_code=503, detail="Guide temporarily unavailable") from exc
    return {
        "now": now.isoformat().replace("+00:00", "Z"),
        "look_back_hours": look_back_hours,
        "look_ahead_hours": look_ahead_hours,
        "rows": [row.to_payload() for row in rows],
    }
