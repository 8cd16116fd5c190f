"""Tests for the shared duration, instant and liveness rules."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from onair.services.timeline import (
    DEFAULT_DURATION_SEC,
    canonical_media_key,
    chain_duration,
    channel_sort_key,
    is_live,
    normalize_duration,
    pick_current,
    pick_live,
    standby_program,
    to_utc,
)

NOW = datetime(2025, 9, 1, 12, 0, 0, tzinfo=timezone.utc)


def row(start_offset_sec, duration=1800, media_ref="a.mp4", row_id=None):
    return {
        "id": row_id,
        "start_time": NOW + timedelta(seconds=start_offset_sec),
        "duration": duration,
        "media_ref": media_ref,
    }


class TestNormalizeDuration:
    @pytest.mark.parametrize("value", [1, 30, 1800, 86400, 3599.5])
    def test_valid_values_pass_through(self, value):
        assert normalize_duration(value) == value

    @pytest.mark.parametrize("value", [None, "abc", "", math.nan, math.inf, -math.inf, 0, -5, 86401, True])
    def test_invalid_values_use_default(self, value):
        assert normalize_duration(value) == DEFAULT_DURATION_SEC

    def test_clock_strings(self):
        assert normalize_duration("30:00") == 1800
        assert normalize_duration("01:00:00") == 3600
        assert normalize_duration("1800") == 1800

    def test_result_always_in_range(self):
        for value in [None, -1, 0, 0.001, 5, 86400, 86400.01, 10**9, math.nan, "x", "25:00:00"]:
            result = normalize_duration(value)
            assert 0 < result <= 86400

    def test_chain_duration_counts_invalid_as_zero(self):
        assert chain_duration(None) == 0
        assert chain_duration(-10) == 0
        assert chain_duration("junk") == 0
        assert chain_duration(600) == 600


class TestToUtc:
    def test_naive_string_with_space_is_utc(self):
        assert to_utc("2025-09-01 12:00:00") == NOW

    def test_zulu_suffix(self):
        assert to_utc("2025-09-01T12:00:00Z") == NOW

    def test_offset_is_converted(self):
        assert to_utc("2025-09-01T14:00:00+02:00") == NOW

    def test_naive_datetime_is_utc(self):
        assert to_utc(datetime(2025, 9, 1, 12, 0, 0)) == NOW

    def test_garbage_is_none(self):
        assert to_utc("not a time") is None
        assert to_utc("") is None
        assert to_utc(None) is None


class TestIsLive:
    """Liveness uses a symmetric 60s drift around [start, end)."""

    def test_inside_program(self):
        assert is_live(row(-600), NOW)

    def test_drift_before_start(self):
        assert is_live(row(60), NOW)
        assert not is_live(row(61), NOW)

    def test_drift_after_end(self):
        assert is_live(row(-1800 - 59), NOW)
        assert not is_live(row(-1800 - 60), NOW)

    def test_invalid_duration_uses_default(self):
        assert is_live(row(-1700, duration=0), NOW)
        assert not is_live(row(-1900, duration=0), NOW)

    def test_unparseable_start_is_never_live(self):
        assert not is_live({"start_time": "bogus", "duration": 60}, NOW)


class TestPickers:
    def test_later_start_wins_overlap(self):
        older = row(-1200, duration=3600, row_id=1)
        newer = row(-300, duration=3600, row_id=2)
        assert pick_live([newer, older], NOW) is newer

    def test_pick_current_falls_back_to_latest_started(self):
        ended = row(-7200, duration=600, row_id=1)
        upcoming = row(3600, row_id=2)
        assert pick_current([ended, upcoming], NOW) is ended

    def test_pick_current_nothing_started(self):
        assert pick_current([row(3600)], NOW) is None


class TestCanonicalMediaKey:
    def test_query_is_stripped(self):
        assert canonical_media_key("a.mp4?sig=xyz") == "a.mp4"
        assert canonical_media_key("https://cdn/x/a.mp4?token=1&exp=2") == "https://cdn/x/a.mp4"

    def test_fragment_is_stripped(self):
        assert canonical_media_key("a.mp4#t=30") == "a.mp4"

    def test_empty(self):
        assert canonical_media_key(None) == ""


class TestChannelSortKey:
    def test_numeric_ids_sort_numerically(self):
        assert sorted([10, 2, 1, 21], key=channel_sort_key) == [1, 2, 10, 21]
        assert sorted(["10", "2", "1"], key=channel_sort_key) == ["1", "2", "10"]

    def test_non_numeric_ids_sort_naturally(self):
        assert sorted(["ch10", "ch2", "ch1"], key=channel_sort_key) == ["ch1", "ch2", "ch10"]

    def test_numeric_before_named(self):
        assert sorted(["news", "3"], key=channel_sort_key) == ["3", "news"]


class TestStandbyProgram:
    def test_standby_is_derived_from_channel(self):
        standby = standby_program(7, NOW)
        assert standby.media_ref == "channel7/standby.mp4"
        assert standby.duration == 300
        assert standby.start_time == NOW
        assert standby.id == "standby"
