"""Tests for authoring a day as a chained list of segments."""

from datetime import date, datetime, timedelta, timezone

import pytest
from conftest import NOW

from onair.models.program import Program, ProgramDraft
from onair.services.builder import (
    build_draft_day,
    chain_segments,
    list_draft_day,
    load_from_published,
    publish_day,
    validate_draft_request,
)
from onair.services.errors import ChannelNotFoundError, DataAccessError, ScheduleValidationError
from onair.services.store import ScheduleStore
from onair.services.timeline import to_utc

DAY = date(2025, 9, 1)
BASE = datetime(2025, 9, 1, 6, 0, 0, tzinfo=timezone.utc)


def draft_request(rows, channel_id=1, day="2025-09-01", base="2025-09-01T06:00:00Z"):
    return {"channelId": channel_id, "day": day, "baseTimeUtc": base, "rows": rows}


class TestChainSegments:
    def test_starts_follow_durations(self):
        chained = chain_segments(
            BASE,
            [
                {"mediaRef": "a.mp4", "durationSeconds": 600},
                {"mediaRef": "b.mp4", "durationSeconds": 900},
                {"mediaRef": "c.mp4", "durationSeconds": 300},
            ],
        )

        assert [item["start_time"] for item in chained] == [
            BASE,
            BASE + timedelta(seconds=600),
            BASE + timedelta(seconds=1500),
        ]

    def test_sort_index_orders_and_ties_keep_input_order(self):
        chained = chain_segments(
            BASE,
            [
                {"mediaRef": "late.mp4", "durationSeconds": 60, "sortIndex": 2},
                {"mediaRef": "first.mp4", "durationSeconds": 60, "sortIndex": 1},
                {"mediaRef": "second.mp4", "durationSeconds": 60, "sortIndex": 1},
                {"mediaRef": "unsorted.mp4", "durationSeconds": 60},
            ],
        )

        assert [item["media_ref"] for item in chained] == ["unsorted.mp4", "first.mp4", "second.mp4", "late.mp4"]
        assert [item["sort_index"] for item in chained] == [0, 1, 2, 3]

    def test_sort_index_is_a_plain_number(self):
        chained = chain_segments(
            BASE,
            [
                {"mediaRef": "clock.mp4", "durationSeconds": 60, "sortIndex": "1:30"},
                {"mediaRef": "nan.mp4", "durationSeconds": 60, "sortIndex": float("nan")},
                {"mediaRef": "two.mp4", "durationSeconds": 60, "sortIndex": "2"},
                {"mediaRef": "one.mp4", "durationSeconds": 60, "sortIndex": 1.5},
            ],
        )

        assert [item["media_ref"] for item in chained] == ["clock.mp4", "nan.mp4", "one.mp4", "two.mp4"]

    def test_invalid_duration_is_stored_but_does_not_advance_clock(self):
        chained = chain_segments(
            BASE,
            [
                {"mediaRef": "a.mp4", "durationSeconds": -30},
                {"mediaRef": "b.mp4", "durationSeconds": "oops"},
                {"mediaRef": "c.mp4", "durationSeconds": "10:00"},
                {"mediaRef": "d.mp4", "durationSeconds": 60},
            ],
        )

        assert [item["start_time"] for item in chained] == [BASE, BASE, BASE, BASE + timedelta(minutes=10)]
        assert chained[0]["duration"] == -30
        assert chained[1]["duration"] is None
        assert chained[2]["duration"] == 600


class TestValidateDraftRequest:
    @pytest.mark.parametrize("missing", ["channelId", "day", "baseTimeUtc", "rows"])
    def test_missing_top_level_field_is_named(self, missing):
        payload = draft_request([])
        payload.pop(missing)

        with pytest.raises(ScheduleValidationError) as excinfo:
            validate_draft_request(payload)

        assert excinfo.value.field == missing
        assert str(excinfo.value) == f"{missing} is required"

    def test_missing_segment_field_is_named_with_index(self):
        payload = draft_request([{"mediaRef": "a.mp4", "durationSeconds": 60}, {"mediaRef": "b.mp4"}])

        with pytest.raises(ScheduleValidationError) as excinfo:
            validate_draft_request(payload)

        assert excinfo.value.field == "rows[1].durationSeconds"

    def test_bad_base_time(self):
        with pytest.raises(ScheduleValidationError) as excinfo:
            validate_draft_request(draft_request([], base="yesterday"))

        assert excinfo.value.field == "baseTimeUtc"

    def test_bad_day(self):
        with pytest.raises(ScheduleValidationError) as excinfo:
            validate_draft_request(draft_request([], day="09/01/2025"))

        assert excinfo.value.field == "day"


class TestBuildDraftDay:
    def test_replaces_previous_draft(self, db, make_channel):
        make_channel(1)
        build_draft_day(db, draft_request([{"mediaRef": f"{i}.mp4", "durationSeconds": 60} for i in range(5)]))

        count = build_draft_day(
            db,
            draft_request([{"mediaRef": "x.mp4", "durationSeconds": 60}, {"mediaRef": "y.mp4", "durationSeconds": 60}]),
        )

        assert count == 2
        rows = list_draft_day(db, 1, DAY)
        assert [row.media_ref for row in rows] == ["x.mp4", "y.mp4"]
        assert [to_utc(row.start_time) for row in rows] == [BASE, BASE + timedelta(seconds=60)]

    def test_other_days_are_untouched(self, db, make_channel):
        make_channel(1)
        build_draft_day(db, draft_request([{"mediaRef": "tomorrow.mp4", "durationSeconds": 60}], day="2025-09-02"))

        build_draft_day(db, draft_request([{"mediaRef": "today.mp4", "durationSeconds": 60}]))

        assert len(list_draft_day(db, 1, date(2025, 9, 2))) == 1
        assert len(list_draft_day(db, 1, DAY)) == 1

    def test_empty_rows_clears_the_day(self, db, make_channel):
        make_channel(1)
        build_draft_day(db, draft_request([{"mediaRef": "a.mp4", "durationSeconds": 60}]))

        assert build_draft_day(db, draft_request([])) == 0
        assert list_draft_day(db, 1, DAY) == []

    def test_unknown_channel(self, db):
        with pytest.raises(ChannelNotFoundError):
            build_draft_day(db, draft_request([{"mediaRef": "a.mp4", "durationSeconds": 60}], channel_id=99))

    def test_failed_replace_keeps_previous_rows(self, db, make_channel):
        make_channel(1)
        build_draft_day(db, draft_request([{"mediaRef": "keep.mp4", "durationSeconds": 60}]))
        broken = ProgramDraft(channel_id=1, day=DAY, sort_index=0, start_time=None, duration=60, media_ref="bad.mp4")

        with pytest.raises(DataAccessError):
            ScheduleStore(db, ProgramDraft).replace_day(1, DAY, [broken])

        assert [row.media_ref for row in list_draft_day(db, 1, DAY)] == ["keep.mp4"]


class TestPublishing:
    def test_publish_replaces_published_day(self, db, make_channel, make_program):
        make_channel(1)
        make_program(1, timedelta(hours=-3), media_ref="stale.mp4")
        make_program(1, timedelta(days=1), media_ref="tomorrow.mp4")
        build_draft_day(
            db,
            draft_request([{"mediaRef": "a.mp4", "durationSeconds": 1800}, {"mediaRef": "b.mp4", "durationSeconds": 1800}]),
        )

        assert publish_day(db, 1, DAY) == 2

        published = db.query(Program).filter(Program.channel_id == 1).order_by(Program.start_time).all()
        assert [row.media_ref for row in published] == ["a.mp4", "b.mp4", "tomorrow.mp4"]

    def test_load_from_published_round_trips_a_day(self, db, make_channel, make_program):
        make_channel(1)
        make_program(1, timedelta(hours=-2), media_ref="morning.mp4", title="Morning")
        make_program(1, timedelta(hours=1), media_ref="afternoon.mp4", title="Afternoon")

        assert load_from_published(db, 1, NOW.date()) == 2

        drafts = list_draft_day(db, 1, NOW.date())
        assert [(row.sort_index, row.media_ref, row.title) for row in drafts] == [
            (0, "morning.mp4", "Morning"),
            (1, "afternoon.mp4", "Afternoon"),
        ]

    def test_publish_unknown_channel(self, db):
        with pytest.raises(ChannelNotFoundError):
            publish_day(db, 42, DAY)
