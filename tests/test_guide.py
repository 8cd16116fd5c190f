"""Tests for the multi-channel current/next/later guide."""

from datetime import timedelta
from types import SimpleNamespace

from conftest import NOW

from onair.services.guide import (
    STATUS_IDLE,
    STATUS_LIVE_FEED,
    STATUS_ON,
    STATUS_UPCOMING,
    project_channel,
    project_guide,
)
from onair.services.store import ScheduleStore


def channel(channel_id=1, always_live=False):
    return SimpleNamespace(
        id=channel_id,
        name=f"Channel {channel_id}",
        slug=None,
        logo_ref=None,
        always_live=always_live,
        live_feed_ref=None,
    )


def row(row_id, offset_min, duration=1800):
    return SimpleNamespace(
        id=row_id,
        channel_id=1,
        start_time=NOW + timedelta(minutes=offset_min),
        duration=duration,
        title=f"Show {row_id}",
        media_ref=f"{row_id}.mp4",
        poster_ref=None,
    )


class TestProjectChannel:
    def test_current_next_later(self):
        rows = [row(1, -10), row(2, 20), row(3, 50), row(4, 80)]

        guide_row = project_channel(channel(), rows, NOW)

        assert guide_row.status == STATUS_ON
        assert (guide_row.current.id, guide_row.next.id, guide_row.later.id) == (1, 2, 3)

    def test_nothing_started_is_upcoming(self):
        guide_row = project_channel(channel(), [row(2, 20), row(3, 50)], NOW)

        assert guide_row.status == STATUS_UPCOMING
        assert guide_row.current is None
        assert (guide_row.next.id, guide_row.later.id) == (2, 3)

    def test_no_rows_is_idle(self):
        guide_row = project_channel(channel(), [], NOW)

        assert guide_row.status == STATUS_IDLE
        assert guide_row.to_payload()["current"] is None

    def test_ended_show_still_counts_as_current(self):
        guide_row = project_channel(channel(), [row(1, -120, duration=600)], NOW)

        assert guide_row.status == STATUS_ON
        assert guide_row.current.id == 1
        assert guide_row.next is None

    def test_always_live_channel(self):
        guide_row = project_channel(channel(21, always_live=True), [row(5, 30)], NOW)

        assert guide_row.status == STATUS_LIVE_FEED
        assert guide_row.current.media_ref == "live:21"
        assert guide_row.next.id == 5


class TestProjectGuide:
    def test_channels_sorted_numerically_and_inactive_skipped(self, db, make_channel):
        make_channel(10)
        make_channel(2)
        make_channel(1)
        make_channel(3, is_active=False)

        rows = project_guide(db, NOW)

        assert [guide_row.channel.id for guide_row in rows] == [1, 2, 10]

    def test_long_running_show_before_window_is_current(self, db, make_channel, make_program):
        make_channel(1)
        make_program(1, timedelta(hours=-8), duration=12 * 3600, media_ref="marathon.mp4")

        (guide_row,) = project_guide(db, NOW, look_back_hours=1, look_ahead_hours=1)

        assert guide_row.status == STATUS_ON
        assert guide_row.current.media_ref == "marathon.mp4"

    def test_rows_outside_window_are_ignored(self, db, make_channel, make_program):
        make_channel(1)
        make_program(1, timedelta(hours=10), media_ref="tonight.mp4")

        (guide_row,) = project_guide(db, NOW, look_back_hours=1, look_ahead_hours=2)

        assert guide_row.status == STATUS_IDLE

    def test_probe_fallback_when_window_query_misses(self, db, make_channel, make_program, monkeypatch):
        make_channel(1)
        make_program(1, timedelta(minutes=-10), media_ref="found.mp4")
        monkeypatch.setattr(ScheduleStore, "window", lambda self, start, end, channel_ids=None: [])

        (guide_row,) = project_guide(db, NOW)

        assert guide_row.current.media_ref == "found.mp4"

    def test_payload_shape(self, db, make_channel, make_program):
        make_channel(1, name="News", slug="news")
        make_program(1, timedelta(minutes=-10), title="Headlines")

        payload = project_guide(db, NOW)[0].to_payload()

        assert payload["channel_name"] == "News"
        assert payload["slug"] == "news"
        assert payload["status"] == STATUS_ON
        assert payload["current"]["title"] == "Headlines"
        assert payload["current"]["start_time"] == "2025-09-01T11:50:00Z"
