from datetime import date, datetime

from pydantic import BaseModel, field_serializer


def _utc_iso(value: datetime) -> str:
    # Start times are stored naive UTC.
    return value.replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


class ProgramOut(BaseModel):
    id: int
    channel_id: int
    start_time: datetime
    duration: float | None = None
    title: str | None = None
    media_ref: str | None = None
    poster_ref: str | None = None

    class Config:
        from_attributes = True

    @field_serializer("start_time")
    def _serialize_start(self, value: datetime) -> str:
        return _utc_iso(value)


class ProgramDraftOut(ProgramOut):
    day: date
    sort_index: int
