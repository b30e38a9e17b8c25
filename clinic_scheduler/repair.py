"""
repair.py — Substitute search for sessions left open by staff-out exceptions.

A gap is a template client session (client present) whose staff member is
out. Each gap is offered to staff idle in that block, in tier order:

  Tier 1  focus staff
  Tier 2  trained staff
  Tier 3  allowed float
  Tier 4  allowed lead        (always needs lead approval)
  Tier 5  sub-eligible staff  (needs approval when the client disallows subs)

Excluded / no-longer-trained staff are never offered. A placement that still
needs approval is kept as a proposal with a pending ApprovalRequest, unless the
same (client, block, staff) is already in approved_subs. Gaps without any
candidate are returned for the cancellation pass.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from clinic_scheduler.approvals import (
    NO_APPROVAL,
    check_lead_approval,
    check_sub_approval,
    create_approval_request,
    is_sub_approved,
)
from clinic_scheduler.models import (
    ApprovedSub,
    Client,
    DayTemplate,
    ExceptionOverlay,
    Staff,
    Substitution,
    UncoveredGap,
)
from clinic_scheduler.predicates import (
    PRIORITY_LEAD,
    PRIORITY_NONE,
    PRIORITY_ORDER,
    PRIORITY_SUB,
    client_staff_priority,
    eligible_staff,
    has_bcba_prep,
    is_lead,
)
from clinic_scheduler.schedule_config import UNKNOWN_NAME, Block

logger = logging.getLogger(__name__)

REASON_NO_ELIGIBLE_STAFF = "no_eligible_staff"


@dataclass(frozen=True)
class RepairResult:
    substitutions: Tuple[Substitution, ...] = ()
    still_uncovered: Tuple[UncoveredGap, ...] = ()

    @property
    def repaired_count(self) -> int:
        return len(self.substitutions)


# ---------------------------------------------------------------------------
# Gaps
# ---------------------------------------------------------------------------

def collect_uncovered_gaps(
    day: DayTemplate,
    overlay: ExceptionOverlay,
    clients: Dict[str, Client],
    staff: Dict[str, Staff],
) -> List[UncoveredGap]:
    """Client sessions whose staff member is out, AM first."""
    gaps: List[UncoveredGap] = []
    for block in (Block.AM, Block.PM):
        for a in day.for_block(block):
            if not a.client_id or a.staff_id not in overlay.out_staff:
                continue
            if a.client_id in overlay.unavailable_clients:
                continue
            client = clients.get(a.client_id)
            member = staff.get(a.staff_id)
            gaps.append(UncoveredGap(
                client_id=a.client_id,
                client_name=client.name if client else UNKNOWN_NAME,
                block=block,
                original_staff_id=a.staff_id,
                original_staff_name=member.name if member else UNKNOWN_NAME,
            ))
    if gaps:
        logger.info(f"Repair initiated — {len(gaps)} uncovered client session(s)")
    return gaps


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

def get_pool_for_block(
    all_staff: Iterable[Staff],
    day: DayTemplate,
    overlay: ExceptionOverlay,
    weekday: str,
    block: Block,
    already_used: Set[str],
) -> List[Staff]:
    """Active grid staff who are in, have no present client this block and no BCBA prep."""
    busy = {
        a.staff_id for a in day.for_block(block)
        if a.client_id and a.client_id not in overlay.unavailable_clients
    }
    return [
        s for s in eligible_staff(all_staff)
        if s.id not in overlay.out_staff
        and s.id not in busy
        and s.id not in already_used
        and not has_bcba_prep(s, weekday, block)
    ]


def tier_order_candidates(pool: Sequence[Staff], client: Client) -> List[Tuple[Staff, str]]:
    """(staff, priority) pairs best-first; name breaks ties."""
    ranked = [(s, client_staff_priority(s, client)) for s in pool]
    ranked = [(s, p) for s, p in ranked if p != PRIORITY_NONE]
    return sorted(ranked, key=lambda sp: (PRIORITY_ORDER[sp[1]], sp[0].name))


# ---------------------------------------------------------------------------
# One gap
# ---------------------------------------------------------------------------

def try_repair_gap(
    gap: UncoveredGap,
    client: Client,
    pool: Sequence[Staff],
    approved_subs: Sequence[ApprovedSub],
) -> Optional[Substitution]:
    candidates = tier_order_candidates(pool, client)
    if not candidates:
        return None

    staff, priority = candidates[0]
    if priority == PRIORITY_LEAD:
        free_leads = sum(1 for s in pool if is_lead(s))
        check = check_lead_approval(client, staff, free_leads)
    elif priority == PRIORITY_SUB:
        check = check_sub_approval(client, staff)
    else:
        check = NO_APPROVAL

    approval = None
    if check.needs_approval and not is_sub_approved(client.id, gap.block, staff.id, approved_subs):
        approval = create_approval_request(check, client, gap.block, staff, gap.original_staff_id)

    return Substitution(
        client_id=client.id,
        block=gap.block,
        original_staff_id=gap.original_staff_id,
        sub_staff_id=staff.id,
        priority=priority,
        approval=approval,
    )


# ---------------------------------------------------------------------------
# All gaps
# ---------------------------------------------------------------------------

def run_repair(
    gaps: Sequence[UncoveredGap],
    day: DayTemplate,
    overlay: ExceptionOverlay,
    all_staff: Sequence[Staff],
    clients: Dict[str, Client],
    weekday: str,
    approved_subs: Sequence[ApprovedSub] = (),
) -> RepairResult:
    used: Dict[Block, Set[str]] = {Block.AM: set(), Block.PM: set()}
    substitutions: List[Substitution] = []
    still: List[UncoveredGap] = []

    for gap in gaps:
        client = clients.get(gap.client_id)
        if client is None:
            still.append(gap)
            continue
        pool = get_pool_for_block(all_staff, day, overlay, weekday, gap.block, used[gap.block])
        sub = try_repair_gap(gap, client, pool, approved_subs)
        if sub is None:
            logger.info(f"  {gap.block.value} {gap.client_name} → REPAIR_FAILED ({REASON_NO_ELIGIBLE_STAFF})")
            still.append(gap)
            continue
        used[gap.block].add(sub.sub_staff_id)
        substitutions.append(sub)
        status = "pending approval" if sub.pending else "placed"
        logger.info(
            f"  {gap.block.value} {gap.client_name} → {sub.sub_staff_id} "
            f"[{sub.priority}] {status}"
        )

    logger.info(f"Repair: {len(substitutions)} placed, {len(still)} still uncovered")
    return RepairResult(substitutions=tuple(substitutions), still_uncovered=tuple(still))
