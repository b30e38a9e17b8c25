"""
predicates.py — Staff / Client eligibility predicates

Functions:
  - Role checks (lead, float, direct service) and the daily grid roster
  - Replacement tier for a client: excluded, no-longer-trained, focus, trained,
    allowed float / allowed lead membership
  - Lunch coverage eligibility (allow list + lunch exclusions)
  - Session times and lunch need for a client on a weekday
  - Location resolution for an assignment

Priority order used when a client needs a replacement:
  focus > trained > float > lead > sub > none
"""

from datetime import date
from typing import Dict, Iterable, List, Optional

from clinic_scheduler.models import (
    Client,
    ClientLocation,
    ResolvedAssignment,
    Role,
    Staff,
)
from clinic_scheduler.schedule_config import (
    AM_BLOCK_END,
    BCBA_PREP_MIN_LEAD_LEVEL,
    DEFAULT_LOCATION,
    NEW_HIRE_PROTECTION_DAYS,
    PM_BLOCK_START,
    Block,
)

DIRECT_SERVICE_ROLES = {Role.BT, Role.RBT, Role.FLOAT, Role.LEAD_RBT}

PRIORITY_FOCUS = "focus"
PRIORITY_TRAINED = "trained"
PRIORITY_FLOAT = "float"
PRIORITY_LEAD = "lead"
PRIORITY_SUB = "sub"
PRIORITY_NONE = "none"

PRIORITY_ORDER: Dict[str, int] = {
    PRIORITY_FOCUS: 0,
    PRIORITY_TRAINED: 1,
    PRIORITY_FLOAT: 2,
    PRIORITY_LEAD: 3,
    PRIORITY_SUB: 4,
    PRIORITY_NONE: 5,
}


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

def is_lead(staff: Staff) -> bool:
    return staff.role == Role.LEAD_RBT


def is_float(staff: Staff) -> bool:
    return staff.role == Role.FLOAT


def is_direct_service(staff: Staff) -> bool:
    return staff.role in DIRECT_SERVICE_ROLES


def eligible_staff(staff: Iterable[Staff]) -> List[Staff]:
    """Staff that appear on the daily grid: active and not a BCBA, sorted by name."""
    return sorted(
        (s for s in staff if s.active and s.role != Role.BCBA),
        key=lambda s: s.name,
    )


def is_new_hire_protected(staff: Optional[Staff], as_of: date) -> bool:
    """True while a trainee is inside their first 30 days (no override)."""
    if staff is None or staff.hire_date is None or staff.new_hire_override:
        return False
    return (as_of - staff.hire_date).days < NEW_HIRE_PROTECTION_DAYS


# ---------------------------------------------------------------------------
# Client staffing rules
# ---------------------------------------------------------------------------

def client_staff_priority(staff: Staff, client: Client) -> str:
    """
    Replacement tier of a staff member for this client.

    Exclusions always win. Floats and leads count only when the client opts
    in and lists them.
    """
    if staff.id in client.excluded_staff_ids or staff.id in client.no_longer_trained_ids:
        return PRIORITY_NONE
    if staff.id in client.focus_staff_ids:
        return PRIORITY_FOCUS
    if staff.id in client.trained_staff_ids:
        return PRIORITY_TRAINED
    if is_float(staff) and client.float_rbts_allowed and staff.id in client.allowed_float_rbt_ids:
        return PRIORITY_FLOAT
    if is_lead(staff) and client.lead_rbts_allowed and staff.id in client.allowed_lead_rbt_ids:
        return PRIORITY_LEAD
    if staff.sub_eligible and is_direct_service(staff):
        return PRIORITY_SUB
    return PRIORITY_NONE


def can_cover_lunch(staff_id: str, client: Client) -> bool:
    """Lunch coverage is looser than a session: only exclusions and the allow list apply."""
    if (
        staff_id in client.excluded_staff_ids
        or staff_id in client.no_longer_trained_ids
        or staff_id in client.lunch_coverage_excluded_staff_ids
    ):
        return False
    if client.lunch_coverage_staff_ids and staff_id not in client.lunch_coverage_staff_ids:
        return False
    return True


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def client_session_times(client: Client, weekday: str) -> Optional[Dict[str, Optional[int]]]:
    """
    AM/PM legs for a weekday, or None when the day is not scheduled.

    Simple start/end days are split at 12:30.
    """
    day = client.schedule.get(weekday)
    if day is None or not day.enabled:
        return None
    if day.start is not None and day.end is not None:
        is_am = day.start < PM_BLOCK_START
        is_pm = day.end > PM_BLOCK_START
        return {
            "am_start": day.start if is_am else None,
            "am_end": min(day.end, PM_BLOCK_START) if is_am else None,
            "pm_start": max(day.start, PM_BLOCK_START) if is_pm else None,
            "pm_end": day.end if is_pm else None,
        }
    return {
        "am_start": day.am_start,
        "am_end": day.am_end,
        "pm_start": day.pm_start,
        "pm_end": day.pm_end,
    }


def client_needs_lunch_coverage(client: Client, weekday: str) -> bool:
    """Does the client's morning run to 11:30 or later?"""
    times = client_session_times(client, weekday)
    if times is None or (times["am_start"] is None and times["am_end"] is None):
        return False
    if times["am_end"] is None:
        return True
    return times["am_end"] >= AM_BLOCK_END


def client_pm_start(client: Client, weekday: str) -> Optional[int]:
    day = client.schedule.get(weekday)
    if day is None or not day.enabled:
        return None
    if day.pm_start is not None:
        return day.pm_start
    if day.start is not None and day.start >= PM_BLOCK_START:
        return day.start
    return None


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

def resolve_location(
    assignment: Optional[ResolvedAssignment],
    client: Optional[Client],
    locations: Dict[str, ClientLocation],
) -> str:
    """Assignment location → client default → "clinic"."""
    if assignment is not None and assignment.location_id:
        loc = locations.get(assignment.location_id)
        if loc is not None:
            return loc.location_type
    if client is not None and client.default_location:
        return client.default_location
    return DEFAULT_LOCATION


def has_bcba_prep(staff: Staff, weekday: str, block: Block) -> bool:
    """Senior leads keep protected BCBA-prep time in the blocks they marked."""
    if not (is_lead(staff) and staff.bcba_prep_enabled and staff.lead_level >= BCBA_PREP_MIN_LEAD_LEVEL):
        return False
    days = staff.bcba_prep_am_days if block == Block.AM else staff.bcba_prep_pm_days
    return weekday in days
