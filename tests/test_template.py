"""
tests/test_template.py — Template resolution, ideal-day overrides, exception overlay.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.models import (
    Client,
    EngineData,
    ExceptionMode,
    ExceptionType,
    IdealDaySegment,
    ScheduleException,
    TemplateAssignment,
)
from clinic_scheduler.overlay import build_overlay
from clinic_scheduler.schedule_config import Block
from clinic_scheduler.template import (
    build_day_from_ideal_segments,
    build_weekly_template,
    resolve_day_template,
    resolve_from_engine_data,
)


def row(weekday, block, staff_id, client_id=None, start=None, end=None, location_id=None):
    return TemplateAssignment(weekday, block, staff_id, client_id, location_id, start, end)


def exc(type_, entity_id, mode, all_day=True, start=None, end=None, id_="x"):
    return ScheduleException(id_, type_, entity_id, mode, all_day, start, end)


# ---------------------------------------------------------------------------
# Weekly template
# ---------------------------------------------------------------------------

class TestWeeklyTemplate:

    def test_rows_grouped_by_weekday_and_block(self):
        weekly = build_weekly_template([
            row("mon", Block.AM, "s1", "c1"),
            row("mon", Block.PM, "s1", "c2"),
            row("tue", Block.AM, "s2", "c3"),
        ])
        assert set(weekly) == {"mon", "tue"}
        assert weekly["mon"].assignment_for("s1", Block.AM).client_id == "c1"
        assert weekly["mon"].assignment_for("s1", Block.PM).client_id == "c2"
        assert weekly["tue"].pm == ()

    def test_multi_row_block_merged_into_segments(self):
        weekly = build_weekly_template([
            row("mon", Block.AM, "s1", "c2", 600, 690),
            row("mon", Block.AM, "s1", None, 450, 510),
            row("mon", Block.AM, "s1", "c1", 510, 600),
        ])
        merged = weekly["mon"].assignment_for("s1", Block.AM)
        # Primary client is the earliest row that has one
        assert merged.client_id == "c1"
        assert [s.start_minute for s in merged.segments] == [450, 510, 600]
        assert merged.start_minute == 450
        assert merged.end_minute == 690

    def test_missing_minutes_use_block_defaults(self):
        weekly = build_weekly_template([
            row("mon", Block.PM, "s1", "c1"),
            row("mon", Block.PM, "s1", "c2", 900, 960),
        ])
        merged = weekly["mon"].assignment_for("s1", Block.PM)
        assert merged.segments[0].start_minute == 750

    def test_all_day_rows_ignored(self):
        weekly = build_weekly_template([row("mon", Block.ALL_DAY, "s1", "c1")])
        assert weekly == {}


# ---------------------------------------------------------------------------
# Ideal-day overrides
# ---------------------------------------------------------------------------

class TestIdealDay:

    def test_override_replaces_template_for_that_day(self):
        template = [row("mon", Block.AM, "s1", "c1"), row("tue", Block.AM, "s1", "c1")]
        ideal = [IdealDaySegment("mon", "s1", 510, 690, "client", "c9")]
        mon = resolve_day_template("mon", template, ideal)
        tue = resolve_day_template("tue", template, ideal)
        assert mon.assignment_for("s1", Block.AM).client_id == "c9"
        assert tue.assignment_for("s1", Block.AM).client_id == "c1"

    def test_only_client_segments_scheduled(self):
        day = build_day_from_ideal_segments([
            IdealDaySegment("mon", "s1", 510, 690, "drive", "c1"),
            IdealDaySegment("mon", "s2", 510, 690, "client", "c2"),
        ], "mon")
        assert day.assignment_for("s1", Block.AM) is None
        assert day.assignment_for("s2", Block.AM).client_id == "c2"

    def test_segments_split_into_am_and_pm(self):
        day = build_day_from_ideal_segments([
            IdealDaySegment("mon", "s1", 510, 690, "client", "c1"),
            IdealDaySegment("mon", "s1", 780, 960, "client", "c2"),
        ], "mon")
        assert day.assignment_for("s1", Block.AM).client_id == "c1"
        assert day.assignment_for("s1", Block.PM).client_id == "c2"

    def test_no_template_for_weekday_is_empty(self):
        day = resolve_day_template("fri", [row("mon", Block.AM, "s1", "c1")])
        assert day.am == () and day.pm == ()


class TestInactiveClients:

    def test_template_rows_for_inactive_clients_dropped(self):
        data = EngineData(
            clients=(Client("c1", "Kai"), Client("c2", "Lou", active=False)),
            template_assignments=(
                row("mon", Block.AM, "s1", "c1"),
                row("mon", Block.AM, "s2", "c2"),
                row("mon", Block.PM, "s2"),
            ),
        )
        day = resolve_from_engine_data(data, "mon")
        assert [a.staff_id for a in day.am] == ["s1"]
        # support rows without a client stay
        assert day.assignment_for("s2", Block.PM) is not None

    def test_ideal_segments_for_inactive_clients_dropped(self):
        data = EngineData(
            clients=(Client("c1", "Kai"), Client("c2", "Lou", active=False)),
            ideal_day_segments=(
                IdealDaySegment("mon", "s1", 510, 690, "client", "c1"),
                IdealDaySegment("mon", "s2", 510, 690, "client", "c2"),
            ),
        )
        day = resolve_from_engine_data(data, "mon")
        assert day.assignment_for("s1", Block.AM).client_id == "c1"
        assert day.assignment_for("s2", Block.AM) is None


# ---------------------------------------------------------------------------
# Exception overlay
# ---------------------------------------------------------------------------

class TestOverlay:

    def test_client_out_all_day(self):
        overlay = build_overlay([exc(ExceptionType.CLIENT, "c1", ExceptionMode.OUT)])
        assert "c1" in overlay.unavailable_clients
        assert "c1" in overlay.lunch_unavailable_clients

    def test_cancelled_client_unavailable(self):
        overlay = build_overlay([exc(ExceptionType.CLIENT, "c1", ExceptionMode.CANCELLED, all_day=False)])
        assert "c1" in overlay.unavailable_clients

    def test_partial_out_over_lunch(self):
        overlay = build_overlay([
            exc(ExceptionType.CLIENT, "c1", ExceptionMode.OUT, False, 690, 780),
            exc(ExceptionType.CLIENT, "c2", ExceptionMode.OUT, False, 510, 600),
        ])
        assert overlay.unavailable_clients == frozenset()
        assert overlay.lunch_unavailable_clients == frozenset({"c1"})

    def test_staff_out_any_window(self):
        overlay = build_overlay([
            exc(ExceptionType.STAFF, "s1", ExceptionMode.OUT, False, 510, 600),
            exc(ExceptionType.STAFF, "s2", ExceptionMode.IN),
        ])
        assert overlay.out_staff == frozenset({"s1"})
