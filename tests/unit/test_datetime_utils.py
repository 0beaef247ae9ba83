"""
Unit tests for datetime helpers.
"""

import pytest
from datetime import datetime, timezone

from command_center.utils.datetime_utils import (
    parse_servicem8_timestamp,
    to_naive_local,
    whole_days_between,
)


class TestParseServiceM8Timestamp:

    def test_plain_stamp_uses_source_offset(self):
        parsed = parse_servicem8_timestamp("2026-03-10 08:00:00", utc_offset_hours=8)
        assert parsed == datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc)

    def test_iso_with_offset_is_honoured(self):
        parsed = parse_servicem8_timestamp("2026-03-10T08:00:00+00:00", utc_offset_hours=8)
        assert parsed == datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("stamp", [None, "", "   ", "0000-00-00 00:00:00", "0000-00-00", "not a date", 12345])
    def test_unusable_stamps(self, stamp):
        assert parse_servicem8_timestamp(stamp) is None


class TestLocalConversion:

    def test_naive_local_from_utc(self):
        # Perth is UTC+8 with no daylight saving
        utc = datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc)
        local = to_naive_local(utc)
        assert local == datetime(2026, 3, 10, 8, 0)

    def test_none_passthrough(self):
        assert to_naive_local(None) is None


def test_whole_days_truncates():
    later = datetime(2026, 3, 10, 23, 0, tzinfo=timezone.utc)
    earlier = datetime(2026, 3, 8, 0, 0, tzinfo=timezone.utc)
    assert whole_days_between(later, earlier) == 2
