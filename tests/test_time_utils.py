"""
tests/test_time_utils.py — Minute / clock conversions and lunch labels.
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.schedule_config import LunchTime
from clinic_scheduler.time_utils import (
    canonical_lunch_label,
    format_block_minutes,
    format_block_range,
    lunch_time_for_minute,
    minutes_to_display_time,
    minutes_to_time_string,
    parse_block_to_minutes,
    parse_time_window,
    time_ranges_overlap,
    time_string_to_minutes,
    time_string_to_minutes_pm_context,
)


class TestParsing:

    def test_time_string_to_minutes(self):
        assert time_string_to_minutes("8:30") == 510
        assert time_string_to_minutes("13:00") == 780
        assert time_string_to_minutes(" 07:05 ") == 425

    @pytest.mark.parametrize("bad", ["", "8", "8:5", "25:00", "8:75", "noon"])
    def test_time_string_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            time_string_to_minutes(bad)

    def test_pm_context(self):
        assert time_string_to_minutes_pm_context("1:00") == 780
        assert time_string_to_minutes_pm_context("4:00") == 960
        assert time_string_to_minutes_pm_context("12:30") == 750
        assert time_string_to_minutes_pm_context("8:30") == 510
        assert time_string_to_minutes_pm_context("7:00") == 420

    def test_parse_block_to_minutes(self):
        assert parse_block_to_minutes("8:30-11:30") == (510, 690)
        assert parse_block_to_minutes("12:30-4:00") == (750, 960)
        assert parse_block_to_minutes("4:00-5:30") == (960, 1050)

    def test_parse_block_rejects_inverted_or_malformed(self):
        with pytest.raises(ValueError):
            parse_block_to_minutes("11:30-8:30")
        with pytest.raises(ValueError):
            parse_block_to_minutes("8:30")

    def test_parse_time_window_blank(self):
        assert parse_time_window(None, "") == (None, None)
        assert parse_time_window("11:00", "1:00") == (660, 780)


class TestFormatting:

    def test_minutes_to_time_string(self):
        assert minutes_to_time_string(780) == "13:00"
        assert minutes_to_time_string(510) == "8:30"

    def test_display_time(self):
        assert minutes_to_display_time(690) == "11:30 AM"
        assert minutes_to_display_time(720) == "12:00 PM"
        assert minutes_to_display_time(780) == "1:00 PM"

    def test_block_labels_use_twelve_hour_clock(self):
        assert format_block_minutes(780) == "1:00"
        assert format_block_range(750, 960) == "12:30-4:00"
        assert format_block_range(420, 510) == "7:00-8:30"


class TestOverlapAndLunch:

    def test_touching_ranges_do_not_overlap(self):
        assert not time_ranges_overlap(510, 660, 660, 750)
        assert time_ranges_overlap(510, 661, 660, 750)

    @pytest.mark.parametrize("minute,label", [
        (640, "11:00"), (674, "11:00"), (675, "11:30"), (704, "11:30"),
        (705, "12:00"), (734, "12:00"), (735, "12:30"), (800, "12:30"),
    ])
    def test_canonical_lunch_label(self, minute, label):
        assert canonical_lunch_label(minute) == label

    def test_lunch_time_for_minute(self):
        assert lunch_time_for_minute(690) == LunchTime.AT_1130
        assert LunchTime.AT_1200.start_minute == 720
        assert LunchTime.AT_1230.end_minute == 780
