"""
models.py — Typed records for one daily schedule computation.

Reference data (Staff, Client, TemplateAssignment, …) is loaded once by
config.py and never mutated. Every engine stage returns fresh frozen records
built from these.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from clinic_scheduler.schedule_config import (
    Block,
    DayBlock,
    LunchTime,
    SourceTag,
)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

class Role(Enum):
    BT = "BT"
    RBT = "RBT"
    FLOAT = "Float"
    LEAD_RBT = "Lead RBT"
    BCBA = "BCBA"
    ADMIN = "Admin"
    LEAD_BCBA = "Lead BCBA"
    CLINICAL_MANAGER = "Clinical Manager"


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Staff:
    id: str
    name: str
    role: Role = Role.RBT
    active: bool = True
    sub_eligible: bool = False
    lead_level: int = 0
    no_lunch: bool = False
    no_late_lunches: bool = False
    hire_date: Optional[date] = None
    new_hire_override: bool = False
    bcba_prep_enabled: bool = False
    bcba_prep_am_days: FrozenSet[str] = frozenset()
    bcba_prep_pm_days: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class DaySchedule:
    """One weekday of a client's attendance; either start/end or AM/PM legs."""
    enabled: bool = True
    start: Optional[int] = None
    end: Optional[int] = None
    am_start: Optional[int] = None
    am_end: Optional[int] = None
    pm_start: Optional[int] = None
    pm_end: Optional[int] = None


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    active: bool = True
    default_location: Optional[str] = None
    schedule: Dict[str, DaySchedule] = field(default_factory=dict, hash=False)

    # staffing
    excluded_staff_ids: FrozenSet[str] = frozenset()
    no_longer_trained_ids: FrozenSet[str] = frozenset()
    focus_staff_ids: FrozenSet[str] = frozenset()
    trained_staff_ids: FrozenSet[str] = frozenset()
    lunch_coverage_staff_ids: FrozenSet[str] = frozenset()
    lunch_coverage_excluded_staff_ids: FrozenSet[str] = frozenset()
    float_rbts_allowed: bool = False
    allowed_float_rbt_ids: FrozenSet[str] = frozenset()
    lead_rbts_allowed: bool = False
    allowed_lead_rbt_ids: FrozenSet[str] = frozenset()
    allow_sub: bool = True

    # lunch grouping
    can_be_grouped: bool = False
    allowed_lunch_peer_ids: FrozenSet[str] = frozenset()
    no_first_lunch_peer_ids: FrozenSet[str] = frozenset()
    no_second_lunch_peer_ids: FrozenSet[str] = frozenset()
    allow_groups_of_3: bool = False
    allow_groups_of_4: bool = False
    disallowed_group_combos: FrozenSet[FrozenSet[str]] = frozenset()
    is_group_leader: bool = False
    group_leader_name: Optional[str] = None
    group_leader_name_first_lunch: Optional[str] = None
    group_leader_name_second_lunch: Optional[str] = None

    # cancellation
    cancel_all_day_only: bool = False
    last_canceled_date: Optional[date] = None
    consecutive_absent_days: int = 0
    days_back_since_absence: int = 0
    cancel_skip_used: bool = False
    critical_cancel_notes: Optional[str] = None


@dataclass(frozen=True)
class ClientLocation:
    id: str
    client_id: str
    location_type: str = "clinic"
    display_name: Optional[str] = None
    school_id: Optional[str] = None
    service_start_date: Optional[date] = None


@dataclass(frozen=True)
class School:
    id: str
    name: str
    has_alternative_lunch: bool = False
    lunch_window_start: int = 690
    lunch_window_end: int = 750


@dataclass(frozen=True)
class CancelLink:
    client_id: str
    linked_client_id: str


@dataclass(frozen=True)
class TemplateAssignment:
    weekday: str
    block: Block
    staff_id: str
    client_id: Optional[str] = None
    location_id: Optional[str] = None
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None


@dataclass(frozen=True)
class IdealDaySegment:
    weekday: str
    staff_id: str
    start_minute: int
    end_minute: int
    segment_type: str = "client"
    client_id: Optional[str] = None
    location_id: Optional[str] = None


class ExceptionType(Enum):
    CLIENT = "client"
    STAFF = "staff"


class ExceptionMode(Enum):
    IN = "in"
    OUT = "out"
    CANCELLED = "cancelled"
    LOCATION = "location"


@dataclass(frozen=True)
class ScheduleException:
    id: str
    type: ExceptionType
    entity_id: str
    mode: ExceptionMode
    all_day: bool = True
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None


@dataclass(frozen=True)
class ApprovedSub:
    client_id: str
    block: Block
    sub_staff_id: str


@dataclass(frozen=True)
class TrainingSession:
    id: str
    plan_id: str
    trainee_id: str
    client_id: str
    trainer_id: Optional[str] = None
    preferred_trainer_id: Optional[str] = None
    stage: str = ""
    scheduled_date: Optional[date] = None
    scheduled_block: Optional[Block] = None
    status: str = "planned"
    training_track: str = ""
    plan_status: Optional[str] = None


@dataclass(frozen=True)
class EngineData:
    staff: Tuple[Staff, ...] = ()
    clients: Tuple[Client, ...] = ()
    template_assignments: Tuple[TemplateAssignment, ...] = ()
    ideal_day_segments: Tuple[IdealDaySegment, ...] = ()
    client_locations: Tuple[ClientLocation, ...] = ()
    schools: Tuple[School, ...] = ()
    cancel_links: Tuple[CancelLink, ...] = ()
    training_sessions: Tuple[TrainingSession, ...] = ()

    def staff_by_id(self) -> Dict[str, Staff]:
        return {s.id: s for s in self.staff}

    def clients_by_id(self) -> Dict[str, Client]:
        return {c.id: c for c in self.clients}

    def locations_by_id(self) -> Dict[str, ClientLocation]:
        return {loc.id: loc for loc in self.client_locations}


# ---------------------------------------------------------------------------
# Template resolution / overlay
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssignmentSegment:
    start_minute: int
    end_minute: int
    client_id: Optional[str] = None
    location_id: Optional[str] = None


@dataclass(frozen=True)
class ResolvedAssignment:
    """One staff member's AM or PM assignment after merging template rows."""
    staff_id: str
    block: Block
    client_id: Optional[str] = None
    location_id: Optional[str] = None
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None
    segments: Tuple[AssignmentSegment, ...] = ()


@dataclass(frozen=True)
class DayTemplate:
    weekday: str
    am: Tuple[ResolvedAssignment, ...] = ()
    pm: Tuple[ResolvedAssignment, ...] = ()

    def for_block(self, block: Block) -> Tuple[ResolvedAssignment, ...]:
        return self.am if block == Block.AM else self.pm

    def assignment_for(self, staff_id: str, block: Block) -> Optional[ResolvedAssignment]:
        for a in self.for_block(block):
            if a.staff_id == staff_id:
                return a
        return None


@dataclass(frozen=True)
class ExceptionOverlay:
    unavailable_clients: FrozenSet[str] = frozenset()
    lunch_unavailable_clients: FrozenSet[str] = frozenset()
    out_staff: FrozenSet[str] = frozenset()


# ---------------------------------------------------------------------------
# Lunch
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LunchSlotDetail:
    """Lunch window that differs from the canonical 30 minutes (schools)."""
    start_minute: int
    end_minute: int
    nearest_label: str
    source: str = "school"
    school_id: Optional[str] = None


@dataclass(frozen=True)
class LunchPlan:
    lunch_times: Dict[str, LunchTime] = field(default_factory=dict, hash=False)
    details: Dict[str, LunchSlotDetail] = field(default_factory=dict, hash=False)

    def staff_at(self, lunch_time: LunchTime) -> List[str]:
        return [sid for sid, t in self.lunch_times.items() if t == lunch_time]


@dataclass(frozen=True)
class CoverageEntry:
    staff_id: str
    client_ids: Tuple[str, ...] = ()
    client_names: Tuple[str, ...] = ()
    client_original_staff: Dict[str, str] = field(default_factory=dict, hash=False)

    def covered_client_ids(self) -> Tuple[str, ...]:
        """Clients in the group whose own staff is someone else."""
        return tuple(c for c in self.client_ids if self.client_original_staff.get(c) != self.staff_id)


@dataclass(frozen=True)
class LunchCoverageError:
    client_id: str
    client_name: str
    lunch_time: LunchTime
    reason: str = "No legal lunch coverage available"


@dataclass(frozen=True)
class LunchCoverage:
    plan: LunchPlan
    coverage: Dict[LunchTime, Dict[str, CoverageEntry]] = field(default_factory=dict, hash=False)
    errors: Tuple[LunchCoverageError, ...] = ()

    def entry_for(self, lunch_time: LunchTime, staff_id: str) -> Optional[CoverageEntry]:
        return self.coverage.get(lunch_time, {}).get(staff_id)


# ---------------------------------------------------------------------------
# Gaps, repair, cancellation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UncoveredGap:
    client_id: str
    client_name: str
    block: Block
    original_staff_id: str
    original_staff_name: str


@dataclass(frozen=True)
class Substitution:
    client_id: str
    block: Block
    original_staff_id: str
    sub_staff_id: str
    priority: str
    approval: Optional["ApprovalRequest"] = None

    @property
    def pending(self) -> bool:
        return self.approval is not None


class CancelTiming(Enum):
    ALL_DAY = "all_day"
    UNTIL_1130 = "until_1130"
    UNTIL_1230 = "until_1230"
    AT_1130 = "at_1130"
    AT_1230 = "at_1230"


@dataclass(frozen=True)
class CancelCandidate:
    client_id: str
    client_name: str
    gap_blocks: FrozenSet[Block] = frozenset()
    can_be_grouped: bool = False
    cancel_all_day_only: bool = False
    last_canceled_date: Optional[date] = None
    is_protected: bool = False
    protected_reason: Optional[str] = None
    is_skipped: bool = False
    skip_reason: Optional[str] = None
    linked_client_ids: Tuple[str, ...] = ()
    critical_cancel_notes: Optional[str] = None

    @property
    def has_am_gap(self) -> bool:
        return Block.AM in self.gap_blocks

    @property
    def has_pm_gap(self) -> bool:
        return Block.PM in self.gap_blocks


@dataclass(frozen=True)
class CancelDecision:
    client_id: str
    client_name: str
    block: Block
    timing: CancelTiming
    reason: str
    linked_client_ids: Tuple[str, ...] = ()
    skipped: Tuple[CancelCandidate, ...] = ()


# ---------------------------------------------------------------------------
# Approvals and training
# ---------------------------------------------------------------------------

class ApprovalType(Enum):
    SUB = "sub"
    LEAD_STAFFING = "lead_staffing"
    LEAD_RESERVE = "lead_reserve"
    ALL_DAY_STAFFING = "all_day_staffing"


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


@dataclass(frozen=True)
class ApprovalCheckResult:
    needs_approval: bool
    approval_type: Optional[ApprovalType] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ApprovalRequest:
    id: str
    type: ApprovalType
    client_id: str
    client_name: str
    block: Block
    proposed_staff_id: str
    proposed_staff_name: str
    reason: str
    original_staff_id: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING


class TrainingStatus(Enum):
    BLOCKED = "blocked"
    DISRUPTED = "disrupted"


@dataclass(frozen=True)
class TrainingSessionUpdate:
    session_id: str
    status: TrainingStatus
    reason: str


# ---------------------------------------------------------------------------
# Output grid
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SlotSegment:
    start_minute: int
    end_minute: int
    value: str
    source: SourceTag
    reason: str
    client_id: Optional[str] = None
    location: Optional[str] = None


@dataclass(frozen=True)
class ScheduleSlot:
    id: str
    block: DayBlock
    label: str
    start_minute: int
    end_minute: int
    value: str
    source: SourceTag
    reason: str
    client_id: Optional[str] = None
    location: Optional[str] = None
    segments: Tuple[SlotSegment, ...] = ()


@dataclass(frozen=True)
class StaffSchedule:
    staff_id: str
    staff_name: str
    status: str
    slots: Tuple[ScheduleSlot, ...]


@dataclass(frozen=True)
class EngineResult:
    schedule: Tuple[StaffSchedule, ...]
    pending_approvals: Tuple[ApprovalRequest, ...]
    lunch_coverage_errors: Tuple[LunchCoverageError, ...]
    training_session_updates: Tuple[TrainingSessionUpdate, ...]
    weekday: str = ""
    lunch: Optional[LunchCoverage] = None
    uncovered_gaps: Tuple[UncoveredGap, ...] = ()
    substitutions: Tuple[Substitution, ...] = ()
    cancel_decisions: Tuple[CancelDecision, ...] = ()

