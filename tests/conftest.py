import os

os.environ["ONAIR_DATABASE_URL"] = "sqlite://"
os.environ["ONAIR_ADMIN_TOKEN"] = "test-admin-token"
os.environ.pop("ONAIR_API_KEY", None)

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from onair.db import Base, SessionLocal, engine  # noqa: E402
from onair.models.channel import Channel  # noqa: E402
from onair.models.program import Program  # noqa: E402

ADMIN_HEADERS = {"Authorization": "Bearer test-admin-token"}
NOW = datetime(2025, 9, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_channel(db):
    def _make(channel_id=1, name=None, **kwargs):
        channel = Channel(id=channel_id, name=name or f"Channel {channel_id}", **kwargs)
        db.add(channel)
        db.commit()
        return channel

    return _make


@pytest.fixture
def make_program(db):
    """Insert a published row starting ``offset`` (timedelta or seconds) from ``base``."""

    def _make(channel_id, offset, duration=1800, media_ref="show.mp4", title=None, base=NOW):
        if not isinstance(offset, timedelta):
            offset = timedelta(seconds=offset)
        program = Program(
            channel_id=channel_id,
            start_time=(base + offset).replace(tzinfo=None),
            duration=duration,
            media_ref=media_ref,
            title=title,
        )
        db.add(program)
        db.commit()
        return program

    return _make


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient

    from onair.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)
