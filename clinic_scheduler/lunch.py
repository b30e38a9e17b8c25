"""
lunch.py — Lunch Coverage Solver

Assigns every active staff member one of the canonical lunch times
(11:00, 11:30, 12:00, 12:30) and then matches a covering staff member to every
client whose own staff is eating during the 11:30–12:00 or 12:00–12:30 half.

Staff eating at 11:30 are free to cover the 12:00 half and vice versa, so the
lunch times decide which coverage is even possible. The planner therefore
looks at coverage needs before it hands out the flexible 11:30/12:00 slots.

Pipeline (each phase takes a LunchState snapshot and returns a new one):
  1. assign_school_lunches   staff serving a school with its own lunch window
  2. find_coverage_needs     AM clients whose session reaches lunch
  3. classify_staff          blocked slots, mandatory 12:30, leads, flexible
  4. build_eligibility       who may cover whom (flexible non-leads only)
  5. assign_fixed_slots      mandatory 12:30 first, then leads
  6. choose_own_staff_slots  each client's own staff, most-restricted first
  7. balance_flexible_staff  everyone else, toward uncovered clients
  8. finalize_lunch_times    safety net for anyone still without a slot
Then build_lunch_coverage matches coverers, most-restricted client first.

The slot balancing in phases 6–7 is greedy: potential coverers are counted
per client, so one staff member can be counted for several clients.

Usage:
  ctx = LunchContext.build(weekday, staff_ids, day, data, overlay)
  coverage = solve_lunch(ctx)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from clinic_scheduler.grouping import can_add_to_group
from clinic_scheduler.models import (
    Client,
    ClientLocation,
    CoverageEntry,
    DayTemplate,
    EngineData,
    ExceptionOverlay,
    LunchCoverage,
    LunchCoverageError,
    LunchPlan,
    LunchSlotDetail,
    ResolvedAssignment,
    School,
    Staff,
)
from clinic_scheduler.predicates import (
    can_cover_lunch,
    client_needs_lunch_coverage,
    client_pm_start,
    is_lead,
    resolve_location,
)
from clinic_scheduler.schedule_config import (
    AM_BLOCK_END,
    DEFAULT_SPLIT_PM_START,
    FIRST_HALF,
    LUNCH_HALF_BY_TIME,
    ONE_PM,
    PM_BLOCK_START,
    SECOND_HALF,
    SPLIT_PRESENT_AT_NOON_LATEST,
    Block,
    LunchTime,
)
from clinic_scheduler.time_utils import canonical_lunch_label

logger = logging.getLogger(__name__)

NO_COVERAGE_REASON = "No legal lunch coverage available"

# Staff eating at the key cover the other half
COVERS_HALF: Dict[LunchTime, LunchTime] = {
    FIRST_HALF: SECOND_HALF,
    SECOND_HALF: FIRST_HALF,
}


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LunchContext:
    """Read-only inputs shared by every phase."""
    weekday: str
    staff_ids: Tuple[str, ...]
    day: DayTemplate
    staff: Dict[str, Staff] = field(hash=False)
    clients: Dict[str, Client] = field(hash=False)
    locations: Dict[str, ClientLocation] = field(hash=False)
    schools: Dict[str, School] = field(hash=False)
    overlay: ExceptionOverlay = ExceptionOverlay()

    @classmethod
    def build(
        cls,
        weekday: str,
        staff_ids: Sequence[str],
        day: DayTemplate,
        data: EngineData,
        overlay: ExceptionOverlay,
    ) -> "LunchContext":
        return cls(
            weekday=weekday,
            staff_ids=tuple(staff_ids),
            day=day,
            staff=data.staff_by_id(),
            clients=data.clients_by_id(),
            locations=data.locations_by_id(),
            schools={s.id: s for s in data.schools},
            overlay=overlay,
        )

    def client_available(self, client_id: Optional[str]) -> bool:
        return bool(client_id) and client_id not in self.overlay.unavailable_clients

    def client_assignment(self, staff_id: str, block: Block) -> Optional[ResolvedAssignment]:
        for a in self.day.for_block(block):
            if a.staff_id == staff_id and a.client_id:
                return a
        return None

    def available_client_assignment(self, staff_id: str, block: Block) -> Optional[ResolvedAssignment]:
        a = self.client_assignment(staff_id, block)
        if a is not None and self.client_available(a.client_id):
            return a
        return None

    def no_lunch(self, staff_id: str) -> bool:
        s = self.staff.get(staff_id)
        return bool(s and s.no_lunch)

    def pm_start(self, staff_id: str) -> Optional[int]:
        """Start of the staff member's PM client, 12:30 when the client has no time on file."""
        a = self.available_client_assignment(staff_id, Block.PM)
        if a is None:
            return None
        client = self.clients.get(a.client_id)
        if client is None:
            return None
        start = client_pm_start(client, self.weekday)
        return start if start is not None else PM_BLOCK_START


# ---------------------------------------------------------------------------
# Snapshot records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CoverageNeed:
    client_id: str
    original_staff_id: str
    split_at_noon: bool = False
    excluded_staff_id: Optional[str] = None
    eligible_staff_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StaffConstraint:
    staff_id: str
    has_am: bool
    has_pm: bool
    pm_start: Optional[int]
    blocked: FrozenSet[LunchTime]
    preferred: Optional[LunchTime]
    is_flexible: bool
    is_mandatory_1230: bool
    is_lead: bool

    def can_take(self, lunch_time: LunchTime) -> bool:
        return lunch_time not in self.blocked


@dataclass(frozen=True)
class LunchState:
    lunch_times: Dict[str, LunchTime] = field(default_factory=dict, hash=False)
    details: Dict[str, LunchSlotDetail] = field(default_factory=dict, hash=False)
    school_staff: FrozenSet[str] = frozenset()
    needs: Tuple[CoverageNeed, ...] = ()
    constraints: Tuple[StaffConstraint, ...] = ()
    flexible_staff: Tuple[str, ...] = ()

    def with_lunch(self, staff_id: str, lunch_time: LunchTime, detail: Optional[LunchSlotDetail] = None) -> "LunchState":
        details = self.details if detail is None else {**self.details, staff_id: detail}
        return replace(self, lunch_times={**self.lunch_times, staff_id: lunch_time}, details=details)

    def constraint_for(self, staff_id: str) -> Optional[StaffConstraint]:
        for c in self.constraints:
            if c.staff_id == staff_id:
                return c
        return None


# ---------------------------------------------------------------------------
# Phase 1: schools with an alternative lunch window
# ---------------------------------------------------------------------------

def _school_for_client(ctx: LunchContext, client_id: str) -> Optional[School]:
    for loc in ctx.locations.values():
        if loc.client_id == client_id and loc.school_id:
            school = ctx.schools.get(loc.school_id)
            if school is not None and school.has_alternative_lunch:
                return school
            return None
    return None


def _school_halves(school: School) -> Tuple[LunchSlotDetail, LunchSlotDetail]:
    start, end = school.lunch_window_start, school.lunch_window_end
    midpoint = start + (end - start) // 2
    first = LunchSlotDetail(start, midpoint, canonical_lunch_label(start), "school", school.id)
    second = LunchSlotDetail(midpoint, end, canonical_lunch_label(midpoint), "school", school.id)
    return first, second


def assign_school_lunches(ctx: LunchContext, state: LunchState) -> LunchState:
    """
    Split a school's lunch window in two. Staff without a morning client take
    the first half so staff still with a client can defer to the second.
    """
    by_school: Dict[str, List[str]] = {}
    for staff_id in ctx.staff_ids:
        if ctx.no_lunch(staff_id):
            continue
        for block in (Block.AM, Block.PM):
            a = ctx.available_client_assignment(staff_id, block)
            if a is None:
                continue
            school = _school_for_client(ctx, a.client_id)
            if school is not None:
                by_school.setdefault(school.id, []).append(staff_id)
                break

    school_staff = set(state.school_staff)
    for school_id, staff_ids in by_school.items():
        first, second = _school_halves(ctx.schools[school_id])
        with_am = [s for s in staff_ids if ctx.available_client_assignment(s, Block.AM)]
        without_am = [s for s in staff_ids if s not in with_am]
        first_ok_for_am = first.start_minute >= AM_BLOCK_END
        second_ok_for_am = second.start_minute >= AM_BLOCK_END

        def place(st: LunchState, staff_id: str, slot: Optional[LunchSlotDetail]) -> LunchState:
            school_staff.add(staff_id)
            if slot is None:
                return st.with_lunch(staff_id, SECOND_HALF)
            lunch_time = FIRST_HALF if slot is first else SECOND_HALF
            return st.with_lunch(staff_id, lunch_time, slot)

        def am_slot(index: int) -> Optional[LunchSlotDetail]:
            if second_ok_for_am and first_ok_for_am:
                return second if index % 2 == 0 else first
            if second_ok_for_am:
                return second
            if first_ok_for_am:
                return first
            return None

        if with_am and without_am:
            pairs = min(len(with_am), len(without_am))
            for i in range(pairs):
                state = place(state, without_am[i], first)
                state = place(state, with_am[i], am_slot(0))
            for i, staff_id in enumerate(without_am[pairs:]):
                state = place(state, staff_id, first if i % 2 == 0 else second)
            for i, staff_id in enumerate(with_am[pairs:]):
                state = place(state, staff_id, am_slot(i))
        elif with_am:
            half = (len(with_am) + 1) // 2
            for i, staff_id in enumerate(with_am):
                if first_ok_for_am and second_ok_for_am:
                    slot = first if i < half else second
                else:
                    slot = am_slot(0)
                state = place(state, staff_id, slot)
        else:
            half = (len(without_am) + 1) // 2
            for i, staff_id in enumerate(without_am):
                state = place(state, staff_id, first if i < half else second)

        logger.debug(f"School {school_id}: {len(staff_ids)} staff on the school lunch window")

    return replace(state, school_staff=frozenset(school_staff))


# ---------------------------------------------------------------------------
# Phase 2: clients needing coverage
# ---------------------------------------------------------------------------

def split_midday_status(ctx: LunchContext, am: ResolvedAssignment) -> Tuple[bool, bool, Optional[str]]:
    """(is_split, present_at_noon, pm_staff_id) for an AM client assignment."""
    pm = next((a for a in ctx.day.pm if a.client_id == am.client_id), None)
    if pm is None:
        return False, False, None
    client = ctx.clients.get(am.client_id)
    am_loc = resolve_location(am, client, ctx.locations)
    pm_loc = resolve_location(pm, client, ctx.locations)
    if am_loc == pm_loc:
        return False, False, None
    pm_start = pm.start_minute if pm.start_minute is not None else DEFAULT_SPLIT_PM_START
    return True, pm_start <= SPLIT_PRESENT_AT_NOON_LATEST, pm.staff_id


def coverage_needs(ctx: LunchContext) -> Tuple[CoverageNeed, ...]:
    needs: List[CoverageNeed] = []
    for a in ctx.day.am:
        if not a.client_id:
            continue
        client = ctx.clients.get(a.client_id)
        if client is None:
            logger.warning(f"AM assignment for {a.staff_id} references unknown client {a.client_id}")
            continue
        if not client_needs_lunch_coverage(client, ctx.weekday):
            continue
        if a.client_id in ctx.overlay.unavailable_clients or a.client_id in ctx.overlay.lunch_unavailable_clients:
            continue

        is_split, present_at_noon, pm_staff_id = split_midday_status(ctx, a)
        if is_split:
            if present_at_noon and pm_staff_id:
                needs.append(CoverageNeed(
                    client_id=a.client_id,
                    original_staff_id=pm_staff_id,
                    split_at_noon=True,
                    excluded_staff_id=a.staff_id,
                ))
            continue
        needs.append(CoverageNeed(client_id=a.client_id, original_staff_id=a.staff_id))
    return tuple(needs)


def find_coverage_needs(ctx: LunchContext, state: LunchState) -> LunchState:
    needs = coverage_needs(ctx)
    logger.debug(f"{len(needs)} clients need lunch coverage")
    return replace(state, needs=needs)


# ---------------------------------------------------------------------------
# Phase 3: per-staff constraints
# ---------------------------------------------------------------------------

def staff_constraint(ctx: LunchContext, staff_id: str) -> StaffConstraint:
    has_am = ctx.available_client_assignment(staff_id, Block.AM) is not None
    has_pm = ctx.available_client_assignment(staff_id, Block.PM) is not None
    pm_start = ctx.pm_start(staff_id)
    member = ctx.staff.get(staff_id)
    lead = bool(member and is_lead(member))
    no_late = bool(member and member.no_late_lunches)

    blocked = set()
    if has_am:
        blocked.add(LunchTime.AT_1100)
    if pm_start is not None and pm_start < ONE_PM:
        blocked.add(LunchTime.AT_1230)

    mandatory = has_pm and pm_start is not None and pm_start >= ONE_PM and not no_late

    preferred = None
    if lead:
        if not has_pm and LunchTime.AT_1230 not in blocked:
            preferred = LunchTime.AT_1230
        elif LunchTime.AT_1100 not in blocked:
            preferred = LunchTime.AT_1100

    flexible = (
        not mandatory
        and LunchTime.AT_1130 not in blocked
        and LunchTime.AT_1200 not in blocked
    )
    return StaffConstraint(
        staff_id=staff_id,
        has_am=has_am,
        has_pm=has_pm,
        pm_start=pm_start,
        blocked=frozenset(blocked),
        preferred=preferred,
        is_flexible=flexible,
        is_mandatory_1230=mandatory,
        is_lead=lead,
    )


def classify_staff(ctx: LunchContext, state: LunchState) -> LunchState:
    constraints = tuple(
        staff_constraint(ctx, sid)
        for sid in ctx.staff_ids
        if sid not in state.school_staff and not ctx.no_lunch(sid)
    )
    flexible = tuple(c.staff_id for c in constraints if c.is_flexible and not c.is_lead)
    return replace(state, constraints=constraints, flexible_staff=flexible)


# ---------------------------------------------------------------------------
# Phase 4: eligibility matrix
# ---------------------------------------------------------------------------

def _may_cover(ctx: LunchContext, staff_id: str, need: CoverageNeed) -> bool:
    if staff_id == need.original_staff_id or staff_id == need.excluded_staff_id:
        return False
    client = ctx.clients.get(need.client_id)
    return client is not None and can_cover_lunch(staff_id, client)


def build_eligibility(ctx: LunchContext, state: LunchState) -> LunchState:
    needs = tuple(
        replace(need, eligible_staff_ids=tuple(
            sid for sid in state.flexible_staff if _may_cover(ctx, sid, need)
        ))
        for need in state.needs
    )
    return replace(state, needs=needs)


# ---------------------------------------------------------------------------
# Phase 5: mandatory 12:30 and leads
# ---------------------------------------------------------------------------

LEAD_FALLBACK_WITH_AM = (LunchTime.AT_1130, LunchTime.AT_1200, LunchTime.AT_1230)
LEAD_FALLBACK_WITHOUT_AM = (LunchTime.AT_1200, LunchTime.AT_1130, LunchTime.AT_1100)


def _lead_slot(c: StaffConstraint) -> LunchTime:
    if c.preferred is not None and c.can_take(c.preferred):
        return c.preferred
    order = LEAD_FALLBACK_WITH_AM if c.has_am else LEAD_FALLBACK_WITHOUT_AM
    for lunch_time in order:
        if c.can_take(lunch_time):
            return lunch_time
    return order[0]


def assign_fixed_slots(ctx: LunchContext, state: LunchState) -> LunchState:
    for c in state.constraints:
        if c.is_mandatory_1230:
            state = state.with_lunch(c.staff_id, LunchTime.AT_1230)
    for c in state.constraints:
        if c.is_lead and not c.is_mandatory_1230:
            state = state.with_lunch(c.staff_id, _lead_slot(c))
    return state


# ---------------------------------------------------------------------------
# Phase 6: each client's own staff
# ---------------------------------------------------------------------------

def _default_half(c: StaffConstraint) -> LunchTime:
    return FIRST_HALF if c.has_am else SECOND_HALF


def _potential_cover(state: LunchState, need: CoverageNeed) -> Tuple[int, int]:
    """(coverers possible at 11:30, coverers possible at 12:00)."""
    at_first = at_second = 0
    for sid in need.eligible_staff_ids:
        taken = state.lunch_times.get(sid)
        if taken is not None:
            if taken == SECOND_HALF:
                at_first += 1
            elif taken == FIRST_HALF:
                at_second += 1
            continue
        c = state.constraint_for(sid)
        if c is None:
            continue
        if c.can_take(SECOND_HALF):
            at_first += 1
        if c.can_take(FIRST_HALF):
            at_second += 1
    return at_first, at_second


def choose_own_staff_slots(ctx: LunchContext, state: LunchState) -> LunchState:
    """Send each client's own staff to the half where more coverers can remain."""
    for need in sorted(state.needs, key=lambda n: len(n.eligible_staff_ids)):
        c = state.constraint_for(need.original_staff_id)
        if c is None or c.is_mandatory_1230 or need.original_staff_id in state.lunch_times:
            continue
        can_first, can_second = c.can_take(FIRST_HALF), c.can_take(SECOND_HALF)
        if can_first != can_second:
            state = state.with_lunch(c.staff_id, FIRST_HALF if can_first else SECOND_HALF)
            continue
        if not can_first:
            continue

        at_first, at_second = _potential_cover(state, need)
        if at_first > at_second:
            choice = FIRST_HALF
        elif at_second > at_first:
            choice = SECOND_HALF
        else:
            choice = _default_half(c)
        logger.debug(
            f"{c.staff_id} eats at {choice.value} for client {need.client_id} "
            f"(cover 11:30={at_first}, 12:00={at_second})"
        )
        state = state.with_lunch(c.staff_id, choice)
    return state


# ---------------------------------------------------------------------------
# Phase 7: remaining flexible staff
# ---------------------------------------------------------------------------

def _current_cover(state: LunchState, need: CoverageNeed, half: LunchTime) -> int:
    return sum(
        1 for sid in need.eligible_staff_ids
        if state.lunch_times.get(sid) == COVERS_HALF[half]
    )


def balance_flexible_staff(ctx: LunchContext, state: LunchState) -> LunchState:
    """Place remaining flexible staff where they help the most uncovered clients."""
    def needs_at(half: LunchTime) -> List[CoverageNeed]:
        return [n for n in state.needs if state.lunch_times.get(n.original_staff_id) == half]

    needing_first = needs_at(FIRST_HALF)
    needing_second = needs_at(SECOND_HALF)

    for staff_id in state.flexible_staff:
        if staff_id in state.lunch_times:
            continue
        c = state.constraint_for(staff_id)
        can_first, can_second = c.can_take(FIRST_HALF), c.can_take(SECOND_HALF)
        if can_first != can_second:
            state = state.with_lunch(staff_id, FIRST_HALF if can_first else SECOND_HALF)
            continue
        if not can_first:
            continue

        help_first = sum(
            1 for n in needing_first
            if staff_id in n.eligible_staff_ids and _current_cover(state, n, FIRST_HALF) == 0
        )
        help_second = sum(
            1 for n in needing_second
            if staff_id in n.eligible_staff_ids and _current_cover(state, n, SECOND_HALF) == 0
        )
        if help_first > help_second:
            choice = SECOND_HALF
        elif help_second > help_first:
            choice = FIRST_HALF
        else:
            choice = _default_half(c)
        state = state.with_lunch(staff_id, choice)
    return state


# ---------------------------------------------------------------------------
# Phase 8: safety net
# ---------------------------------------------------------------------------

def _fallback_slot(c: StaffConstraint) -> LunchTime:
    can_first, can_second = c.can_take(FIRST_HALF), c.can_take(SECOND_HALF)
    if can_first and can_second:
        return _default_half(c)
    if can_first:
        return FIRST_HALF
    if can_second:
        return SECOND_HALF
    if c.can_take(LunchTime.AT_1100):
        return LunchTime.AT_1100
    if c.can_take(LunchTime.AT_1230):
        return LunchTime.AT_1230
    return _default_half(c)


def finalize_lunch_times(ctx: LunchContext, state: LunchState) -> LunchState:
    for c in state.constraints:
        if c.staff_id not in state.lunch_times and not c.is_mandatory_1230:
            logger.debug(f"Fallback lunch for {c.staff_id}")
            state = state.with_lunch(c.staff_id, _fallback_slot(c))
    return state


LUNCH_PHASES: Tuple[Callable[[LunchContext, LunchState], LunchState], ...] = (
    assign_school_lunches,
    find_coverage_needs,
    classify_staff,
    build_eligibility,
    assign_fixed_slots,
    choose_own_staff_slots,
    balance_flexible_staff,
    finalize_lunch_times,
)


def run_lunch_phases(ctx: LunchContext) -> LunchState:
    state = LunchState()
    for phase in LUNCH_PHASES:
        state = phase(ctx, state)
    return state


def plan_lunches(ctx: LunchContext) -> LunchPlan:
    state = run_lunch_phases(ctx)
    counts = {t.value: sum(1 for v in state.lunch_times.values() if v == t) for t in LunchTime}
    logger.info(f"Lunch plan: {counts}")
    return LunchPlan(lunch_times=dict(state.lunch_times), details=dict(state.details))


# ---------------------------------------------------------------------------
# Coverage matching
# ---------------------------------------------------------------------------

def _coverers_for(ctx: LunchContext, plan: LunchPlan, half: LunchTime) -> List[str]:
    """
    Staff on the floor during this half: those eating at the other half
    first, then the 11:00 / 12:30 eaters, then staff who work through lunch.
    """
    other = COVERS_HALF[half]
    rank = {other: 0, LunchTime.AT_1230: 1, LunchTime.AT_1100: 1}
    present = [
        sid for sid in ctx.staff_ids
        if plan.lunch_times.get(sid) != half
    ]
    return sorted(present, key=lambda sid: rank.get(plan.lunch_times.get(sid), 2))


def _match_half(
    ctx: LunchContext,
    plan: LunchPlan,
    needs: Sequence[CoverageNeed],
    half: LunchTime,
) -> Tuple[Dict[str, CoverageEntry], List[LunchCoverageError]]:
    pairing_half = LUNCH_HALF_BY_TIME[half]
    coverers = _coverers_for(ctx, plan, half)
    groups: Dict[str, List[Tuple[Client, str]]] = {sid: [] for sid in coverers}

    def add(staff_id: str, client: Client, original: str) -> bool:
        group = groups[staff_id]
        if can_add_to_group([c for c, _ in group], client, pairing_half):
            group.append((client, original))
            return True
        return False

    lunching: List[CoverageNeed] = []
    for need in needs:
        own = need.original_staff_id
        if own in groups and add(own, ctx.clients[need.client_id], own):
            continue
        lunching.append(need)

    def eligible(need: CoverageNeed) -> List[str]:
        return [sid for sid in coverers if _may_cover(ctx, sid, need)]

    errors: List[LunchCoverageError] = []
    for need in sorted(lunching, key=lambda n: len(eligible(n))):
        client = ctx.clients[need.client_id]
        if not any(add(sid, client, need.original_staff_id) for sid in eligible(need)):
            logger.warning(f"No lunch coverage for {client.name} at {half.value}")
            errors.append(LunchCoverageError(client.id, client.name, half, NO_COVERAGE_REASON))

    entries = {
        sid: CoverageEntry(
            staff_id=sid,
            client_ids=tuple(c.id for c, _ in group),
            client_names=tuple(c.name for c, _ in group),
            client_original_staff={c.id: orig for c, orig in group},
        )
        for sid, group in groups.items()
        if group
    }
    return entries, errors


def build_lunch_coverage(ctx: LunchContext, plan: LunchPlan) -> LunchCoverage:
    needs = list(coverage_needs(ctx))
    first_needs = [n for n in needs if not n.split_at_noon]

    first_entries, first_errors = _match_half(ctx, plan, first_needs, FIRST_HALF)
    second_entries, second_errors = _match_half(ctx, plan, needs, SECOND_HALF)

    errors = tuple(first_errors + second_errors)
    logger.info(
        f"Lunch coverage: {len(first_entries)} groups at 11:30, "
        f"{len(second_entries)} groups at 12:00, {len(errors)} errors"
    )
    return LunchCoverage(
        plan=plan,
        coverage={
            LunchTime.AT_1100: {},
            FIRST_HALF: first_entries,
            SECOND_HALF: second_entries,
            LunchTime.AT_1230: {},
        },
        errors=errors,
    )


def solve_lunch(ctx: LunchContext) -> LunchCoverage:
    return build_lunch_coverage(ctx, plan_lunches(ctx))
