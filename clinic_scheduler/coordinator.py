"""
coordinator.py — Daily Schedule Coordinator

Entry point for one day's computation:

  1. Resolve the template (ideal-day override wins) and the exception overlay
  2. Flag training sessions hit by the exceptions
  3. All-day approvals for same-client AM/PM template staffing
  4. Repair staff-out gaps with idle staff (optional)
  5. Cancel clients whose gap could not be repaired (optional)
  6. Solve lunches on the effective day (subs in, cancelled clients out)
  7. Render six day blocks per staff member from the DAY_BLOCKS rule table

Usage:
  result = generate_daily_schedule(exceptions, engine_data, approved_subs,
                                   day_of_week=run_date.weekday(),
                                   as_of=run_date)
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from clinic_scheduler.approvals import all_day_requests
from clinic_scheduler.cancellations import (
    build_cancel_pool,
    cancel_timing_description,
    select_all_cancellations,
)
from clinic_scheduler.lunch import LunchContext, solve_lunch
from clinic_scheduler.models import (
    ApprovalRequest,
    ApprovedSub,
    CancelDecision,
    CancelTiming,
    Client,
    ClientLocation,
    CoverageEntry,
    DayTemplate,
    EngineData,
    EngineResult,
    ExceptionOverlay,
    LunchCoverage,
    ResolvedAssignment,
    ScheduleException,
    ScheduleSlot,
    SlotSegment,
    Staff,
    StaffSchedule,
    Substitution,
)
from clinic_scheduler.overlay import build_overlay
from clinic_scheduler.predicates import eligible_staff, has_bcba_prep, resolve_location
from clinic_scheduler.repair import RepairResult, collect_uncovered_gaps, run_repair
from clinic_scheduler.schedule_config import (
    DAY_BLOCKS,
    LUNCH_HALF_BY_TIME,
    UNFILLED,
    UNKNOWN_NAME,
    WEEKDAY_KEYS,
    WEEKEND_FALLBACK_DAY,
    Block,
    BlockRule,
    DayBlockSpec,
    LunchHalf,
    LunchTime,
    SourceTag,
)
from clinic_scheduler.template import resolve_from_engine_data
from clinic_scheduler.time_utils import format_block_range
from clinic_scheduler.training import process_training_sessions

logger = logging.getLogger(__name__)

LUNCH = "LUNCH"
OPEN = "OPEN"
OUT = "OUT"
CANCELLED = "CANCELLED"
BCBA_PREP = "BCBA Prep"

STATUS_ACTIVE = "ACTIVE"
STATUS_OUT = "OUT"


class SlotKind(Enum):
    CLIENT = "client"
    REPAIR = "repair"
    REPAIR_PENDING = "repair_pending"
    CLIENT_UNAVAILABLE = "client_unavailable"
    CANCELLED = "cancelled"
    OPEN = "open"
    BCBA_PREP = "bcba_prep"
    OUT = "out"
    OUT_NEEDS_COVERAGE = "out_needs_coverage"
    OUT_COVERED = "out_covered"


WORKING_KINDS = frozenset({SlotKind.CLIENT, SlotKind.REPAIR, SlotKind.REPAIR_PENDING})
OUT_KINDS = frozenset({SlotKind.OUT, SlotKind.OUT_NEEDS_COVERAGE, SlotKind.OUT_COVERED})


@dataclass(frozen=True)
class SessionState:
    """What one staff member is doing in one template block."""
    kind: SlotKind
    value: str
    source: SourceTag
    reason: str
    client_id: Optional[str] = None
    location: Optional[str] = None
    assignment: Optional[ResolvedAssignment] = None


# ---------------------------------------------------------------------------
# Day of week
# ---------------------------------------------------------------------------

def resolve_weekday(day_of_week: Optional[int], as_of: date) -> str:
    """Monday = 0. Weekends run against the Monday template."""
    index = as_of.weekday() if day_of_week is None else day_of_week
    if not 0 <= index <= 6:
        raise ValueError(f"day_of_week must be 0-6, got {index}")
    if index >= 5:
        logger.warning(
            f"{WEEKDAY_KEYS[index]} has no clinic template, "
            f"using {WEEKDAY_KEYS[WEEKEND_FALLBACK_DAY]}"
        )
        index = WEEKEND_FALLBACK_DAY
    return WEEKDAY_KEYS[index]


# ---------------------------------------------------------------------------
# Cancellation helpers
# ---------------------------------------------------------------------------

def cancelled_blocks(decision: CancelDecision) -> FrozenSet[Block]:
    if decision.block == Block.ALL_DAY:
        return frozenset({Block.AM, Block.PM})
    return frozenset({decision.block})


def _leaves_before_lunch(decision: CancelDecision) -> bool:
    # Clients cancelled for the morning or from 11:30 are not here over lunch
    if decision.block in (Block.AM, Block.ALL_DAY):
        return True
    return decision.timing == CancelTiming.AT_1130


# ---------------------------------------------------------------------------
# Effective day
# ---------------------------------------------------------------------------

def build_effective_day(
    day: DayTemplate,
    overlay: ExceptionOverlay,
    substitutions: Sequence[Substitution],
    decisions: Sequence[CancelDecision],
) -> Tuple[DayTemplate, ExceptionOverlay]:
    """
    The day as it will actually run: substitutes take over their sessions,
    out staff without a substitute drop out, cancelled sessions disappear.
    Returns the new day and an overlay with the lunch-unavailable set widened.
    """
    subs = {(s.block, s.original_staff_id): s for s in substitutions}
    sub_staff = {(s.block, s.sub_staff_id) for s in substitutions}
    cancelled = {
        (d.client_id, block) for d in decisions for block in cancelled_blocks(d)
    }

    def effective(block: Block) -> Tuple[ResolvedAssignment, ...]:
        out: List[ResolvedAssignment] = []
        for a in day.for_block(block):
            if a.client_id and (a.client_id, block) in cancelled:
                continue
            if a.staff_id in overlay.out_staff:
                sub = subs.get((block, a.staff_id))
                if sub is not None:
                    out.append(replace(a, staff_id=sub.sub_staff_id))
                continue
            if (block, a.staff_id) in sub_staff:
                continue
            out.append(a)
        return tuple(out)

    effective_day = DayTemplate(weekday=day.weekday, am=effective(Block.AM), pm=effective(Block.PM))
    away = {d.client_id for d in decisions if _leaves_before_lunch(d)}
    effective_overlay = replace(
        overlay,
        lunch_unavailable_clients=overlay.lunch_unavailable_clients | frozenset(away),
    )
    return effective_day, effective_overlay


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _plural_clients(n: int) -> str:
    return f"{n} client" if n == 1 else f"{n} clients"


class DayView:
    """Lookups shared by every slot renderer for one computation."""

    def __init__(
        self,
        weekday: str,
        day: DayTemplate,
        overlay: ExceptionOverlay,
        data: EngineData,
        substitutions: Sequence[Substitution],
        decisions: Sequence[CancelDecision],
        lunch: LunchCoverage,
    ):
        self.weekday = weekday
        self.day = day
        self.overlay = overlay
        self.staff: Dict[str, Staff] = data.staff_by_id()
        self.clients: Dict[str, Client] = data.clients_by_id()
        self.locations: Dict[str, ClientLocation] = data.locations_by_id()
        self.subs_by_original = {(s.block, s.original_staff_id): s for s in substitutions}
        self.subs_by_sub = {(s.block, s.sub_staff_id): s for s in substitutions}
        self.cancelled: Dict[Tuple[str, Block], CancelDecision] = {
            (d.client_id, block): d for d in decisions for block in cancelled_blocks(d)
        }
        self.lunch = lunch

    def client_name(self, client_id: Optional[str]) -> str:
        client = self.clients.get(client_id) if client_id else None
        return client.name if client else UNKNOWN_NAME

    def staff_name(self, staff_id: str) -> str:
        member = self.staff.get(staff_id)
        return member.name if member else UNKNOWN_NAME

    def location(self, assignment: Optional[ResolvedAssignment], client_id: Optional[str]) -> str:
        client = self.clients.get(client_id) if client_id else None
        return resolve_location(assignment, client, self.locations)

    def lunch_time(self, staff_id: str) -> Optional[LunchTime]:
        return self.lunch.plan.lunch_times.get(staff_id)

    # -- per-block session state ------------------------------------------

    def _cancelled_state(self, decision: CancelDecision, a: ResolvedAssignment) -> SessionState:
        return SessionState(
            SlotKind.CANCELLED, CANCELLED, SourceTag.CANCEL,
            f"{decision.client_name}: {cancel_timing_description(decision.timing)}",
            client_id=decision.client_id,
            location=self.location(a, decision.client_id),
            assignment=a,
        )

    def session_state(self, member: Staff, block: Block) -> SessionState:
        a = self.day.assignment_for(member.id, block)
        client_id = a.client_id if a is not None else None
        present = bool(client_id) and client_id not in self.overlay.unavailable_clients

        if member.id in self.overlay.out_staff:
            if not present:
                return SessionState(SlotKind.OUT, OUT, SourceTag.CANCEL, "Staff Out")
            sub = self.subs_by_original.get((block, member.id))
            if sub is not None:
                return SessionState(
                    SlotKind.OUT_COVERED, OUT, SourceTag.CANCEL,
                    f"Staff Out - covered by {self.staff_name(sub.sub_staff_id)}",
                    client_id=client_id,
                )
            decision = self.cancelled.get((client_id, block))
            if decision is not None:
                return self._cancelled_state(decision, a)
            return SessionState(
                SlotKind.OUT_NEEDS_COVERAGE, UNFILLED, SourceTag.UNFILLED,
                "Staff Out - needs coverage",
                client_id=client_id,
                location=self.location(a, client_id),
                assignment=a,
            )

        sub = self.subs_by_sub.get((block, member.id))
        if sub is not None:
            covering = self.day.assignment_for(sub.original_staff_id, block)
            original = self.staff_name(sub.original_staff_id)
            if sub.pending:
                kind, reason = SlotKind.REPAIR_PENDING, f"Substitute for {original} (pending approval)"
            else:
                kind, reason = SlotKind.REPAIR, f"Substitute for {original}"
            return SessionState(
                kind, self.client_name(sub.client_id), SourceTag.REPAIR, reason,
                client_id=sub.client_id,
                location=self.location(covering, sub.client_id),
                assignment=covering,
            )

        if not present and has_bcba_prep(member, self.weekday, block):
            return SessionState(SlotKind.BCBA_PREP, BCBA_PREP, SourceTag.OFF_SCHEDULE, "BCBA Preparation (Protected)")

        if client_id:
            if not present:
                return SessionState(SlotKind.CLIENT_UNAVAILABLE, UNFILLED, SourceTag.UNFILLED, "Client unavailable")
            decision = self.cancelled.get((client_id, block))
            if decision is not None:
                return self._cancelled_state(decision, a)
            return SessionState(
                SlotKind.CLIENT, self.client_name(client_id), SourceTag.TEMPLATE, "Matched from Template",
                client_id=client_id,
                location=self.location(a, client_id),
                assignment=a,
            )

        return SessionState(SlotKind.OPEN, OPEN, SourceTag.UNFILLED, "Unassigned")

    # -- coverage display ------------------------------------------------

    def coverage_value(self, entry: CoverageEntry, lunch_time: LunchTime) -> str:
        if len(entry.client_ids) > 1:
            first = LUNCH_HALF_BY_TIME[lunch_time] == LunchHalf.FIRST
            for client_id in entry.client_ids:
                client = self.clients.get(client_id)
                if client is None or not client.is_group_leader:
                    continue
                half_name = client.group_leader_name_first_lunch if first else client.group_leader_name_second_lunch
                name = half_name or client.group_leader_name
                if name:
                    return name
        return "/".join(entry.client_names)


def _slot(member: Staff, spec: DayBlockSpec, state: SessionState, **overrides) -> ScheduleSlot:
    fields = dict(
        id=f"{member.id}-{spec.block.value}",
        block=spec.block,
        label=format_block_range(spec.start_minute, spec.end_minute),
        start_minute=spec.start_minute,
        end_minute=spec.end_minute,
        value=state.value,
        source=state.source,
        reason=state.reason,
        client_id=state.client_id,
        location=state.location,
    )
    fields.update(overrides)
    return ScheduleSlot(**fields)


def _work_segments(view: DayView, spec: DayBlockSpec, state: SessionState) -> List[SlotSegment]:
    """The session's own pieces, clipped to the day block."""
    a = state.assignment
    pieces = []
    if state.kind in WORKING_KINDS and a is not None and len(a.segments) > 1:
        for seg in a.segments:
            if seg.client_id:
                value, reason = view.client_name(seg.client_id), state.reason
            else:
                value, reason = OPEN, "Non-client time"
            location = view.location(None, seg.client_id) if seg.client_id else None
            pieces.append((seg.start_minute, seg.end_minute, value, reason, seg.client_id, location))
    elif state.kind in WORKING_KINDS and a is not None:
        start = a.start_minute if a.start_minute is not None else spec.start_minute
        end = a.end_minute if a.end_minute is not None else spec.end_minute
        pieces.append((start, end, state.value, state.reason, state.client_id, state.location))
    else:
        pieces.append((spec.start_minute, spec.end_minute, state.value, state.reason, state.client_id, state.location))

    segments = []
    for start, end, value, reason, client_id, location in pieces:
        start, end = max(start, spec.start_minute), min(end, spec.end_minute)
        if end > start:
            segments.append(SlotSegment(start, end, value, state.source, reason, client_id, location))
    return segments


def _carve_lunch(segments: List[SlotSegment], lunch_time: LunchTime, reason: str) -> List[SlotSegment]:
    lunch_start, lunch_end = lunch_time.start_minute, lunch_time.end_minute
    carved: List[SlotSegment] = []
    for seg in segments:
        if seg.end_minute <= lunch_start or seg.start_minute >= lunch_end:
            carved.append(seg)
            continue
        if seg.start_minute < lunch_start:
            carved.append(replace(seg, end_minute=lunch_start))
        if seg.end_minute > lunch_end:
            carved.append(replace(seg, start_minute=lunch_end))
    carved.append(SlotSegment(lunch_start, lunch_end, LUNCH, SourceTag.TEMPLATE, reason))
    return sorted(carved, key=lambda s: s.start_minute)


def render_edge(view: DayView, member: Staff, spec: DayBlockSpec) -> ScheduleSlot:
    return _slot(member, spec, view.session_state(member, spec.template_block))


def render_session(view: DayView, member: Staff, spec: DayBlockSpec) -> ScheduleSlot:
    state = view.session_state(member, spec.template_block)
    segments = _work_segments(view, spec, state)
    lunch_time = view.lunch_time(member.id)

    if lunch_time in spec.split_lunch and state.kind not in OUT_KINDS:
        opens_block = lunch_time.start_minute == spec.start_minute
        reason = f"Late Lunch ({lunch_time.value})" if opens_block else f"Early Lunch ({lunch_time.value})"
        segments = _carve_lunch(segments, lunch_time, reason)
        value = state.value if state.kind in WORKING_KINDS else LUNCH
        return _slot(member, spec, state, value=value, reason=reason, segments=tuple(segments))

    if len(segments) > 1:
        return _slot(member, spec, state, segments=tuple(segments))
    return _slot(member, spec, state)


def render_lunch_half(view: DayView, member: Staff, spec: DayBlockSpec) -> ScheduleSlot:
    half = spec.lunch_time
    if member.id in view.overlay.out_staff:
        return _slot(member, spec, SessionState(SlotKind.OUT, OUT, SourceTag.CANCEL, "Staff Out"))

    lunch_time = view.lunch_time(member.id)
    if lunch_time == half:
        detail = view.lunch.plan.details.get(member.id)
        if detail is not None:
            reason = f"School Lunch ({format_block_range(detail.start_minute, detail.end_minute)})"
        else:
            reason = f"Lunch ({half.value})"
        return _slot(member, spec, SessionState(SlotKind.OPEN, LUNCH, SourceTag.TEMPLATE, reason))

    entry = view.lunch.entry_for(half, member.id)
    if entry is not None and entry.client_ids:
        covered = entry.covered_client_ids()
        if covered:
            reason = f"Lunch Coverage ({_plural_clients(len(entry.client_ids))})"
        else:
            reason = "Own client through lunch"
        first_client = entry.client_ids[0]
        state = SessionState(
            SlotKind.CLIENT, view.coverage_value(entry, half), SourceTag.TEMPLATE, reason,
            client_id=first_client,
            location=view.location(None, first_client),
        )
        return _slot(member, spec, state)

    return _slot(member, spec, SessionState(SlotKind.OPEN, OPEN, SourceTag.TEMPLATE, "No coverage needed"))


BLOCK_RENDERERS: Dict[BlockRule, Callable[[DayView, Staff, DayBlockSpec], ScheduleSlot]] = {
    BlockRule.EDGE: render_edge,
    BlockRule.SESSION: render_session,
    BlockRule.LUNCH_HALF: render_lunch_half,
}


def render_staff_schedule(view: DayView, member: Staff) -> StaffSchedule:
    slots = tuple(BLOCK_RENDERERS[spec.rule](view, member, spec) for spec in DAY_BLOCKS)
    status = STATUS_OUT if member.id in view.overlay.out_staff else STATUS_ACTIVE
    return StaffSchedule(staff_id=member.id, staff_name=member.name, status=status, slots=slots)


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------

def _all_day_pairs(day: DayTemplate, overlay: ExceptionOverlay) -> Iterable[Tuple[str, str, Optional[str]]]:
    for am in day.am:
        if not am.client_id or am.staff_id in overlay.out_staff:
            continue
        if am.client_id in overlay.unavailable_clients:
            continue
        pm = day.assignment_for(am.staff_id, Block.PM)
        yield am.staff_id, am.client_id, pm.client_id if pm is not None else None


def _dedupe(requests: Iterable[ApprovalRequest]) -> Tuple[ApprovalRequest, ...]:
    seen: Set[str] = set()
    out = []
    for request in requests:
        if request.id in seen:
            continue
        seen.add(request.id)
        out.append(request)
    return tuple(out)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def generate_daily_schedule(
    exceptions: Sequence[ScheduleException],
    engine_data: EngineData,
    approved_subs: Sequence[ApprovedSub] = (),
    day_of_week: Optional[int] = None,
    *,
    as_of: date,
    repair_gaps: bool = True,
    select_cancellations: bool = True,
    prefer_full_day: bool = True,
) -> EngineResult:
    """
    Compute one day's schedule. Pure: every intermediate record is rebuilt
    from the inputs, and the required `as_of` is the only notion of "today".
    """
    weekday = resolve_weekday(day_of_week, as_of)
    logger.info(f"Generating schedule for {weekday} (as of {as_of.isoformat()})")

    day = resolve_from_engine_data(engine_data, weekday)
    overlay = build_overlay(exceptions)
    staff_by_id = engine_data.staff_by_id()
    clients_by_id = engine_data.clients_by_id()

    training_updates = process_training_sessions(engine_data.training_sessions, overlay, as_of)
    approvals: List[ApprovalRequest] = all_day_requests(
        _all_day_pairs(day, overlay), clients_by_id, staff_by_id
    )

    gaps = collect_uncovered_gaps(day, overlay, clients_by_id, staff_by_id)
    if repair_gaps:
        repair = run_repair(
            gaps, day, overlay, engine_data.staff, clients_by_id, weekday, approved_subs
        )
    else:
        repair = RepairResult(still_uncovered=tuple(gaps))
    approvals.extend(s.approval for s in repair.substitutions if s.approval is not None)

    decisions: List[CancelDecision] = []
    if select_cancellations and repair.still_uncovered:
        pool = build_cancel_pool(
            repair.still_uncovered,
            clients_by_id,
            engine_data.client_locations,
            engine_data.cancel_links,
            engine_data.template_assignments,
            as_of,
            engine_data.training_sessions,
            staff_by_id,
        )
        decisions = select_all_cancellations(pool, prefer_full_day)

    roster = eligible_staff(engine_data.staff)
    present_ids = [s.id for s in roster if s.id not in overlay.out_staff]
    effective_day, lunch_overlay = build_effective_day(day, overlay, repair.substitutions, decisions)
    ctx = LunchContext.build(weekday, present_ids, effective_day, engine_data, lunch_overlay)
    lunch = solve_lunch(ctx)

    view = DayView(weekday, day, overlay, engine_data, repair.substitutions, decisions, lunch)
    schedule = tuple(render_staff_schedule(view, member) for member in roster)

    pending = _dedupe(approvals)
    logger.info(
        f"Schedule ready: {len(schedule)} staff, {len(pending)} pending approval(s), "
        f"{len(lunch.errors)} lunch error(s), {len(decisions)} cancellation(s)"
    )
    return EngineResult(
        schedule=schedule,
        pending_approvals=pending,
        lunch_coverage_errors=lunch.errors,
        training_session_updates=tuple(training_updates),
        weekday=weekday,
        lunch=lunch,
        uncovered_gaps=repair.still_uncovered,
        substitutions=repair.substitutions,
        cancel_decisions=tuple(decisions),
    )
