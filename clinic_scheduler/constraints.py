"""
constraints.py — Finalization checks for a computed day

Hard constraints (block finalization):
  - LUNCH_COVERAGE: a client has no legal lunch coverage
  - PENDING_APPROVAL: a staffing decision still needs sign-off
  - DOUBLE_BOOKING: one client shown with two staff in the same block
  - COVER_WHILE_EATING: a staff member covers during their own lunch

Soft constraints (need human attention):
  - UNFILLED_SLOT: a client session with no staff
  - CANCEL_SKIPPED: a client deferred by a skip rule
  - CANCEL_BLOCKED: an uncovered client that could not be cancelled

Usage:
  checker = ScheduleChecker(result)
  hard, soft = checker.check_all()
  errors, warnings = validate_engine_data(engine_data)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from clinic_scheduler.models import EngineData, EngineResult
from clinic_scheduler.schedule_config import UNFILLED, DayBlock, SourceTag

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    block: Optional[str] = None
    staff: Optional[str] = None
    client: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.block:
            parts.append(f"block={self.block}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.client:
            parts.append(f"client={self.client}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


# Blocks where a client can only be with one staff member at a time
EXCLUSIVE_BLOCKS = (DayBlock.AM, DayBlock.FIRST_LUNCH, DayBlock.SECOND_LUNCH, DayBlock.PM)
STAFFED_SOURCES = (SourceTag.TEMPLATE, SourceTag.REPAIR)


class ScheduleChecker:
    """Classifies the problems left in an EngineResult."""

    def __init__(self, result: EngineResult):
        self.result = result

    # -----------------------------------------------------------------------
    # HARD: lunch coverage errors
    # -----------------------------------------------------------------------

    def check_lunch_coverage(self) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.HARD,
                constraint_type="LUNCH_COVERAGE",
                description=f"{e.client_name}: {e.reason}",
                block=e.lunch_time.value,
                client=e.client_id,
            )
            for e in self.result.lunch_coverage_errors
        ]

    # -----------------------------------------------------------------------
    # HARD: pending approvals
    # -----------------------------------------------------------------------

    def check_pending_approvals(self) -> List[ConstraintViolation]:
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.HARD,
                constraint_type="PENDING_APPROVAL",
                description=f"{a.type.value}: {a.reason}",
                block=a.block.value,
                staff=a.proposed_staff_id,
                client=a.client_id,
                details={"approval_id": a.id},
            )
            for a in self.result.pending_approvals
        ]

    # -----------------------------------------------------------------------
    # HARD: a client with two staff in one block
    # -----------------------------------------------------------------------

    def check_double_booking(self) -> List[ConstraintViolation]:
        violations = []
        for block in EXCLUSIVE_BLOCKS:
            seen: Dict[str, str] = {}  # client → first staff
            for staff_schedule in self.result.schedule:
                slot = next((s for s in staff_schedule.slots if s.block == block), None)
                if slot is None or not slot.client_id or slot.source not in STAFFED_SOURCES:
                    continue
                if slot.value == UNFILLED:
                    continue
                first = seen.get(slot.client_id)
                if first is not None and first != staff_schedule.staff_id:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.HARD,
                        constraint_type="DOUBLE_BOOKING",
                        description=(
                            f"Client {slot.client_id} shown with both {first} "
                            f"and {staff_schedule.staff_id}"
                        ),
                        block=block.value,
                        staff=staff_schedule.staff_id,
                        client=slot.client_id,
                        details={"first_staff": first},
                    ))
                else:
                    seen[slot.client_id] = staff_schedule.staff_id
        return violations

    # -----------------------------------------------------------------------
    # HARD: covering during one's own lunch
    # -----------------------------------------------------------------------

    def check_cover_while_eating(self) -> List[ConstraintViolation]:
        lunch = self.result.lunch
        if lunch is None:
            return []
        violations = []
        for lunch_time, entries in lunch.coverage.items():
            for staff_id, entry in entries.items():
                if lunch.plan.lunch_times.get(staff_id) != lunch_time:
                    continue
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.HARD,
                    constraint_type="COVER_WHILE_EATING",
                    description=f"{staff_id} covers {len(entry.client_ids)} client(s) during own lunch",
                    block=lunch_time.value,
                    staff=staff_id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: unfilled sessions
    # -----------------------------------------------------------------------

    def check_unfilled(self) -> List[ConstraintViolation]:
        violations = []
        for staff_schedule in self.result.schedule:
            for slot in staff_schedule.slots:
                if slot.source == SourceTag.UNFILLED and slot.value == UNFILLED:
                    violations.append(ConstraintViolation(
                        severity=ConstraintSeverity.SOFT,
                        constraint_type="UNFILLED_SLOT",
                        description=f"{slot.label} for {staff_schedule.staff_name}: {slot.reason}",
                        block=slot.block.value,
                        staff=staff_schedule.staff_id,
                        client=slot.client_id,
                    ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: cancellation outcomes needing a look
    # -----------------------------------------------------------------------

    def check_cancellations(self) -> List[ConstraintViolation]:
        violations = []
        reported: Set[str] = set()
        for decision in self.result.cancel_decisions:
            for candidate in decision.skipped:
                if candidate.client_id in reported:
                    continue
                reported.add(candidate.client_id)
                violations.append(ConstraintViolation(
                    severity=ConstraintSeverity.SOFT,
                    constraint_type="CANCEL_SKIPPED",
                    description=f"{candidate.client_name}: {candidate.skip_reason}",
                    client=candidate.client_id,
                ))

        cancelled = {d.client_id for d in self.result.cancel_decisions}
        for gap in self.result.uncovered_gaps:
            if gap.client_id in cancelled or gap.client_id in reported:
                continue
            reported.add(gap.client_id)
            violations.append(ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="CANCEL_BLOCKED",
                description=f"{gap.client_name} is uncovered and was not selected for cancellation",
                block=gap.block.value,
                staff=gap.original_staff_id,
                client=gap.client_id,
            ))
        return violations

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(self) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Returns:
            (hard_violations, soft_violations)
        """
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_lunch_coverage())
        hard.extend(self.check_pending_approvals())
        hard.extend(self.check_double_booking())
        hard.extend(self.check_cover_while_eating())
        soft.extend(self.check_unfilled())
        soft.extend(self.check_cancellations())

        logger.info(f"Finalization check: {len(hard)} hard, {len(soft)} soft")
        return hard, soft


def can_finalize(result: EngineResult) -> bool:
    hard, _ = ScheduleChecker(result).check_all()
    return not hard


# ---------------------------------------------------------------------------
# Input validation (loaded reference data)
# ---------------------------------------------------------------------------

def _duplicates(ids: List[str]) -> List[str]:
    seen: Set[str] = set()
    dupes = []
    for i in ids:
        if i in seen and i not in dupes:
            dupes.append(i)
        seen.add(i)
    return dupes


def validate_engine_data(data: EngineData) -> Tuple[List[str], List[str]]:
    """
    Validate reference data for structural integrity.

    Returns:
        (errors, warnings) as lists of strings
    """
    errors = []
    warnings = []

    staff_ids = [s.id for s in data.staff]
    client_ids = [c.id for c in data.clients]
    for label, ids in (("staff", staff_ids), ("client", client_ids)):
        dupes = _duplicates(ids)
        if dupes:
            errors.append(f"Duplicate {label} ids: {dupes}")

    known_staff, known_clients = set(staff_ids), set(client_ids)
    if not any(s.active for s in data.staff):
        warnings.append("No active staff")

    for row in data.template_assignments:
        where = f"template {row.weekday} {row.block.value} {row.staff_id}"
        if row.staff_id not in known_staff:
            errors.append(f"{where}: unknown staff id")
        if row.client_id and row.client_id not in known_clients:
            errors.append(f"{where}: unknown client id {row.client_id}")
        if row.start_minute is not None and row.end_minute is not None and row.end_minute <= row.start_minute:
            errors.append(f"{where}: end {row.end_minute} is not after start {row.start_minute}")

    for seg in data.ideal_day_segments:
        where = f"ideal day {seg.weekday} {seg.staff_id}"
        if seg.end_minute <= seg.start_minute:
            errors.append(f"{where}: end {seg.end_minute} is not after start {seg.start_minute}")
        if seg.staff_id not in known_staff:
            warnings.append(f"{where}: unknown staff id")
        if seg.client_id and seg.client_id not in known_clients:
            warnings.append(f"{where}: unknown client id {seg.client_id}")

    for client in data.clients:
        for weekday, sched in client.schedule.items():
            if sched.start is not None and sched.end is not None and sched.end <= sched.start:
                warnings.append(f"{client.name} ({weekday}): session end is not after start")

    school_ids = {s.id for s in data.schools}
    for school in data.schools:
        if school.lunch_window_end <= school.lunch_window_start:
            errors.append(f"School {school.name}: lunch window ends before it starts")
    for loc in data.client_locations:
        if loc.client_id not in known_clients:
            warnings.append(f"Location {loc.id}: unknown client id {loc.client_id}")
        if loc.school_id and loc.school_id not in school_ids:
            warnings.append(f"Location {loc.id}: unknown school id {loc.school_id}")

    for link in data.cancel_links:
        for cid in (link.client_id, link.linked_client_id):
            if cid not in known_clients:
                warnings.append(f"Cancel link references unknown client {cid}")

    return errors, warnings
