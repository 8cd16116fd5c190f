import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from onair.api.common import require_admin
from onair.db import get_db
from onair.models.channel import Channel
from onair.models.program import Program, ProgramDraft
from onair.schemas.channel import ChannelOut
from onair.services.resolver import KIND_STANDBY, Resolution, resolve_now
from onair.services.store import ScheduleStore
from onair.services.timeline import channel_sort_key, standby_program, utc_now

router = APIRouter(prefix="/channels", tags=["channels"])
logger = logging.getLogger(__name__)


def _normalize_slug(value: str | None) -> str | None:
    cleaned = "-".join((value or "").strip().lower().split())
    cleaned = "".join(ch for ch in cleaned if ch.isalnum() or ch == "-")
    while "--" in cleaned:
        cleaned = cleaned.replace("--", "-")
    return cleaned.strip("-") or None


def _find_channel(db: Session, channel_ref: str) -> Channel | None:
    ref = (channel_ref or "").strip()
    if ref.isdigit():
        direct = db.query(Channel).get(int(ref))
        if direct:
            return direct
    return db.query(Channel).filter(Channel.slug == _normalize_slug(ref)).first()


def _commit(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail="Channel id or slug already in use") from exc


@router.get("", response_model=list[ChannelOut])
def list_channels(include_inactive: bool = False, db: Session = Depends(get_db)):
    query = db.query(Channel)
    if not include_inactive:
        query = query.filter(Channel.is_active.is_(True))
    channels = query.all()
    channels.sort(key=lambda channel: channel_sort_key(channel.id))
    return channels


@router.post("", response_model=ChannelOut, dependencies=[Depends(require_admin)])
def create_channel(
    id: int,
    name: str,
    slug: str | None = None,
    always_live: bool = False,
    live_feed_ref: str | None = None,
    logo_ref: str | None = None,
    is_active: bool = True,
    db: Session = Depends(get_db),
):
    cleaned = (name or "").strip()
    if not cleaned:
        raise HTTPException(status_code=400, detail="Channel name cannot be empty")
    if db.query(Channel).get(id):
        raise HTTPException(status_code=400, detail="Channel id already in use")
    channel = Channel(
        id=id,
        name=cleaned,
        slug=_normalize_slug(slug),
        always_live=always_live,
        live_feed_ref=(live_feed_ref or "").strip() or None,
        logo_ref=(logo_ref or "").strip() or None,
        is_active=is_active,
    )
    db.add(channel)
    _commit(db)
    db.refresh(channel)
    return channel


@router.get("/{channel_ref}", response_model=ChannelOut)
def get_channel(channel_ref: str, db: Session = Depends(get_db)):
    channel = _find_channel(db, channel_ref)
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


@router.put("/{channel_id}", response_model=ChannelOut, dependencies=[Depends(require_admin)])
def update_channel(
    channel_id: int,
    name: str | None = None,
    slug: str | None = None,
    always_live: bool | None = None,
    live_feed_ref: str | None = None,
    logo_ref: str | None = None,
    is_active: bool | None = None,
    db: Session = Depends(get_db),
):
    channel = db.query(Channel).get(channel_id)
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")
    if name is not None:
        cleaned = name.strip()
        if not cleaned:
            raise HTTPException(status_code=400, detail="Channel name cannot be empty")
        channel.name = cleaned
    if slug is not None:
        channel.slug = _normalize_slug(slug)
    if always_live is not None:
        channel.always_live = always_live
    if live_feed_ref is not None:
        channel.live_feed_ref = live_feed_ref.strip() or None
    if logo_ref is not None:
        channel.logo_ref = logo_ref.strip() or None
    if is_active is not None:
        channel.is_active = is_active
    _commit(db)
    db.refresh(channel)
    return channel


@router.delete("/{channel_id}", dependencies=[Depends(require_admin)])
def delete_channel(channel_id: int, db: Session = Depends(get_db)):
    channel = db.query(Channel).get(channel_id)
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")
    db.query(ProgramDraft).filter(ProgramDraft.channel_id == channel_id).delete(synchronize_session=False)
    db.query(Program).filter(Program.channel_id == channel_id).delete(synchronize_session=False)
    db.delete(channel)
    db.commit()
    return {"ok": True}


@router.get("/{channel_ref}/now")
def now_playing(channel_ref: str, db: Session = Depends(get_db)):
    now = utc_now()
    try:
        channel = _find_channel(db, channel_ref)
    except SQLAlchemyError:
        logger.exception("Channel lookup for %s failed, serving standby", channel_ref)
        if not channel_ref.strip().isdigit():
            raise HTTPException(status_code=503, detail="Initializing channel")
        channel_id = int(channel_ref.strip())
        return Resolution(
            channel_id,
            standby_program(channel_id, now),
            KIND_STANDBY,
            now,
            error="Schedule temporarily unavailable",
        ).to_payload()
    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")
    return resolve_now(ScheduleStore(db, Program), channel, now).to_payload()
