"""
tests/test_constraints.py — Finalization checks and reference-data validation.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.constraints import (
    ConstraintSeverity,
    ScheduleChecker,
    can_finalize,
    validate_engine_data,
)
from clinic_scheduler.models import (
    ApprovalRequest,
    ApprovalType,
    CancelCandidate,
    CancelDecision,
    CancelLink,
    CancelTiming,
    Client,
    CoverageEntry,
    DaySchedule,
    EngineData,
    EngineResult,
    IdealDaySegment,
    LunchCoverage,
    LunchCoverageError,
    LunchPlan,
    ScheduleSlot,
    School,
    Staff,
    StaffSchedule,
    TemplateAssignment,
    UncoveredGap,
)
from clinic_scheduler.schedule_config import Block, DayBlock, LunchTime, SourceTag


def slot(block, value, source=SourceTag.TEMPLATE, client_id=None, reason=""):
    return ScheduleSlot(f"x-{block.value}", block, "label", 0, 0, value, source, reason, client_id)


def result(schedule=(), approvals=(), errors=(), lunch=None, gaps=(), decisions=()):
    return EngineResult(
        schedule=tuple(schedule),
        pending_approvals=tuple(approvals),
        lunch_coverage_errors=tuple(errors),
        training_session_updates=(),
        weekday="mon",
        lunch=lunch,
        uncovered_gaps=tuple(gaps),
        cancel_decisions=tuple(decisions),
    )


# ---------------------------------------------------------------------------
# Schedule checker
# ---------------------------------------------------------------------------

class TestScheduleChecker:

    def test_clean_result_finalizes(self):
        schedule = [StaffSchedule("s1", "Avery", "active", (slot(DayBlock.AM, "Kai", client_id="c1"),))]
        assert can_finalize(result(schedule))

    def test_lunch_error_is_hard(self):
        err = LunchCoverageError("c1", "Kai", LunchTime.AT_1130)
        hard, _ = ScheduleChecker(result(errors=[err])).check_all()
        assert [v.constraint_type for v in hard] == ["LUNCH_COVERAGE"]
        assert hard[0].severity == ConstraintSeverity.HARD
        assert hard[0].block == "11:30"

    def test_pending_approval_blocks_finalize(self):
        approval = ApprovalRequest("sub-c1-AM-s2", ApprovalType.SUB, "c1", "Kai", Block.AM, "s2", "Blake", "r")
        assert not can_finalize(result(approvals=[approval]))
        (violation,) = ScheduleChecker(result(approvals=[approval])).check_pending_approvals()
        assert violation.details == {"approval_id": "sub-c1-AM-s2"}

    def test_double_booking(self):
        schedule = [
            StaffSchedule("s1", "Avery", "active", (slot(DayBlock.AM, "Kai", client_id="c1"),)),
            StaffSchedule("s2", "Blake", "active",
                          (slot(DayBlock.AM, "Kai", SourceTag.REPAIR, client_id="c1"),)),
        ]
        (violation,) = ScheduleChecker(result(schedule)).check_double_booking()
        assert violation.client == "c1"
        assert violation.details == {"first_staff": "s1"}

    def test_unfilled_and_cancelled_are_not_double_booked(self):
        schedule = [
            StaffSchedule("s1", "Avery", "out", (slot(DayBlock.AM, "UNFILLED", SourceTag.UNFILLED, "c1"),)),
            StaffSchedule("s2", "Blake", "active", (slot(DayBlock.AM, "CANCELLED", SourceTag.CANCEL, "c1"),)),
            StaffSchedule("s3", "Casey", "active", (slot(DayBlock.AM, "Kai", client_id="c1"),)),
        ]
        assert ScheduleChecker(result(schedule)).check_double_booking() == []

    def test_cover_while_eating(self):
        plan = LunchPlan(lunch_times={"s1": LunchTime.AT_1130})
        coverage = {LunchTime.AT_1130: {"s1": CoverageEntry("s1", ("c1",))}}
        lunch = LunchCoverage(plan, coverage)
        (violation,) = ScheduleChecker(result(lunch=lunch)).check_cover_while_eating()
        assert violation.staff == "s1"

    def test_unfilled_slot_is_soft(self):
        schedule = [StaffSchedule("s1", "Avery", "out", (
            slot(DayBlock.AM, "UNFILLED", SourceTag.UNFILLED, "c1", "Staff Out - needs coverage"),
            slot(DayBlock.PM, "OPEN", SourceTag.UNFILLED),
        ))]
        hard, soft = ScheduleChecker(result(schedule)).check_all()
        assert hard == []
        assert [v.constraint_type for v in soft] == ["UNFILLED_SLOT"]
        assert "needs coverage" in str(soft[0])

    def test_cancellation_notes(self):
        skipped = CancelCandidate("c2", "Lou", frozenset({Block.AM}), is_skipped=True, skip_reason="why")
        decision = CancelDecision("c1", "Kai", Block.AM, CancelTiming.UNTIL_1230, "r", skipped=(skipped,))
        gaps = [
            UncoveredGap("c1", "Kai", Block.AM, "s1", "Avery"),
            UncoveredGap("c2", "Lou", Block.AM, "s2", "Blake"),
            UncoveredGap("c3", "Max", Block.PM, "s3", "Casey"),
        ]
        violations = ScheduleChecker(result(gaps=gaps, decisions=[decision])).check_cancellations()
        assert [(v.constraint_type, v.client) for v in violations] == [
            ("CANCEL_SKIPPED", "c2"),
            ("CANCEL_BLOCKED", "c3"),
        ]


# ---------------------------------------------------------------------------
# Reference data validation
# ---------------------------------------------------------------------------

class TestValidateEngineData:

    def test_valid_data(self):
        data = EngineData(
            staff=(Staff("s1", "Avery"),),
            clients=(Client("c1", "Kai"),),
            template_assignments=(TemplateAssignment("mon", Block.AM, "s1", "c1"),),
        )
        assert validate_engine_data(data) == ([], [])

    def test_errors(self):
        data = EngineData(
            staff=(Staff("s1", "Avery"), Staff("s1", "Again")),
            clients=(Client("c1", "Kai"),),
            template_assignments=(
                TemplateAssignment("mon", Block.AM, "s9", "c1"),
                TemplateAssignment("mon", Block.PM, "s1", "c9", None, 900, 800),
            ),
            ideal_day_segments=(IdealDaySegment("mon", "s1", 600, 600),),
            schools=(School("sc", "North", lunch_window_start=750, lunch_window_end=690),),
        )
        errors, _ = validate_engine_data(data)
        assert any("Duplicate staff ids" in e for e in errors)
        assert any("unknown staff id" in e for e in errors)
        assert any("unknown client id c9" in e for e in errors)
        assert any("end 800 is not after start 900" in e for e in errors)
        assert any(e.startswith("ideal day mon s1") for e in errors)
        assert any("School North" in e for e in errors)

    def test_warnings(self):
        data = EngineData(
            staff=(Staff("s1", "Avery", active=False),),
            clients=(Client("c1", "Kai", schedule={"mon": DaySchedule(start=900, end=600)}),),
            cancel_links=(CancelLink("c1", "c7"),),
        )
        errors, warnings = validate_engine_data(data)
        assert errors == []
        assert "No active staff" in warnings
        assert any("Kai (mon)" in w for w in warnings)
        assert "Cancel link references unknown client c7" in warnings
