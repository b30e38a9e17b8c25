"""
approvals.py — Which staffing decisions need a human sign-off.

  sub              the client does not allow substitutes
  lead_staffing    a Lead RBT is pulled onto a client
  lead_reserve     ... and that leaves 4 or fewer leads free clinic-wide
  all_day_staffing the same staff member has the same client AM and PM

Request ids are built only from (type, client, block, staff), so a
recomputation with unchanged inputs yields the same ids and a stored
approve/deny decision can be carried over (see reconcile_approvals).
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from clinic_scheduler.models import (
    ApprovalCheckResult,
    ApprovalRequest,
    ApprovalStatus,
    ApprovalType,
    ApprovedSub,
    Client,
    Staff,
)
from clinic_scheduler.predicates import is_lead
from clinic_scheduler.schedule_config import LEAD_RESERVE_THRESHOLD, Block

logger = logging.getLogger(__name__)

NO_APPROVAL = ApprovalCheckResult(needs_approval=False)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def check_sub_approval(client: Client, proposed_sub: Optional[Staff]) -> ApprovalCheckResult:
    if proposed_sub is None:
        return NO_APPROVAL
    if not client.allow_sub:
        return ApprovalCheckResult(True, ApprovalType.SUB, "Client does not allow substitutes")
    return NO_APPROVAL


def check_lead_approval(
    client: Client,
    proposed_lead: Optional[Staff],
    available_leads_count: int,
) -> ApprovalCheckResult:
    """`available_leads_count` is the number of free leads before this assignment."""
    if proposed_lead is None or not is_lead(proposed_lead):
        return NO_APPROVAL

    remaining = available_leads_count - 1
    if remaining <= LEAD_RESERVE_THRESHOLD:
        return ApprovalCheckResult(
            True,
            ApprovalType.LEAD_RESERVE,
            f"Using lead would leave only {remaining} leads available "
            f"(reserve threshold is {LEAD_RESERVE_THRESHOLD})",
        )
    return ApprovalCheckResult(True, ApprovalType.LEAD_STAFFING, "Lead RBT assignment requires approval")


def check_all_day_staffing_approval(
    staff_id: str,
    client_id: str,
    am_client_id: Optional[str],
    pm_client_id: Optional[str],
) -> ApprovalCheckResult:
    if am_client_id and am_client_id == pm_client_id == client_id:
        return ApprovalCheckResult(
            True,
            ApprovalType.ALL_DAY_STAFFING,
            "Same staff assigned to same client for both AM and PM",
        )
    return NO_APPROVAL


def is_sub_approved(client_id: str, block: Block, staff_id: str, approved_subs: Iterable[ApprovedSub]) -> bool:
    return any(
        a.client_id == client_id and a.block == block and a.sub_staff_id == staff_id
        for a in approved_subs
    )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

def approval_request_id(approval_type: ApprovalType, client_id: str, block: Block, staff_id: str) -> str:
    if approval_type == ApprovalType.SUB:
        return f"sub-{client_id}-{block.value}-{staff_id}"
    if approval_type in (ApprovalType.LEAD_STAFFING, ApprovalType.LEAD_RESERVE):
        return f"lead-{client_id}-{block.value}-{staff_id}"
    return f"all-day-{client_id}-{staff_id}"


def create_approval_request(
    check: ApprovalCheckResult,
    client: Client,
    block: Block,
    staff: Staff,
    original_staff_id: Optional[str] = None,
) -> ApprovalRequest:
    reason = check.reason or ""
    if check.approval_type == ApprovalType.ALL_DAY_STAFFING:
        reason = f"All-day staffing: {staff.name} assigned to {client.name} for both AM and PM"
    return ApprovalRequest(
        id=approval_request_id(check.approval_type, client.id, block, staff.id),
        type=check.approval_type,
        client_id=client.id,
        client_name=client.name,
        block=block,
        proposed_staff_id=staff.id,
        proposed_staff_name=staff.name,
        reason=reason,
        original_staff_id=original_staff_id,
    )


def all_day_requests(
    pairs: Iterable[Tuple[str, str, Optional[str]]],
    clients: Dict[str, Client],
    staff: Dict[str, Staff],
) -> List[ApprovalRequest]:
    """`pairs` yields (staff_id, am_client_id, pm_client_id)."""
    requests = []
    for staff_id, am_client_id, pm_client_id in pairs:
        check = check_all_day_staffing_approval(staff_id, am_client_id, am_client_id, pm_client_id)
        if not check.needs_approval:
            continue
        client, member = clients.get(am_client_id), staff.get(staff_id)
        if client is None or member is None:
            continue
        requests.append(create_approval_request(check, client, Block.AM, member))
    return requests


# ---------------------------------------------------------------------------
# Caller-side merge
# ---------------------------------------------------------------------------

def reconcile_approvals(
    previous: Sequence[ApprovalRequest],
    current: Sequence[ApprovalRequest],
) -> List[ApprovalRequest]:
    """
    Carry decided statuses over to a fresh computation.

    Ids still present keep their approved/denied status, ids that disappeared
    are dropped, new ids stay pending.
    """
    decided = {r.id: r.status for r in previous if r.status != ApprovalStatus.PENDING}
    merged = []
    for request in current:
        status = decided.get(request.id)
        if status is not None:
            request = replace(request, status=status)
        merged.append(request)
    dropped = {r.id for r in previous} - {r.id for r in current}
    if dropped:
        logger.info(f"Dropping {len(dropped)} approval(s) no longer produced: {sorted(dropped)}")
    return merged


def pending_only(requests: Iterable[ApprovalRequest]) -> List[ApprovalRequest]:
    return [r for r in requests if r.status == ApprovalStatus.PENDING]
