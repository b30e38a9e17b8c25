"""
cancellations.py — Cancellation pool and target selection

When a client's staff is out and nobody can legally take the session, the
client becomes a cancellation candidate. Candidates carry:

  Protection (never cancelled):
    - any service location that started less than 30 days ago
    - a planned new-hire training session whose trainee is in their first
      30 days
  Skip rules (deferred once, recorded for audit):
    - attends ≤ 2 distinct weekdays and has not used the skip this cycle
    - back from ≥ 5 consecutive absent days with < 3 attendance days since

Selection rotates fairly: never-cancelled clients first, then the oldest
last-cancelled date. With prefer_full_day, a client with gaps in both blocks
(or flagged cancel-all-day-only) is cancelled for the whole day.
"""

import logging
from datetime import date, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from clinic_scheduler.models import (
    CancelCandidate,
    CancelDecision,
    CancelLink,
    CancelTiming,
    Client,
    ClientLocation,
    Staff,
    TemplateAssignment,
    TrainingSession,
    UncoveredGap,
)
from clinic_scheduler.predicates import is_new_hire_protected
from clinic_scheduler.schedule_config import (
    LOCATION_PROTECTION_DAYS,
    SKIP_CONSECUTIVE_ABSENT_DAYS,
    SKIP_MAX_DAYS_PER_WEEK,
    SKIP_RETURN_DAYS_NEEDED,
    Block,
)

logger = logging.getLogger(__name__)

NEW_HIRE_TRACK = "new_hire"

TIMING_DESCRIPTIONS: Dict[CancelTiming, str] = {
    CancelTiming.ALL_DAY: "Cancelled all day",
    CancelTiming.UNTIL_1130: "Cancelled until 11:30 AM",
    CancelTiming.UNTIL_1230: "Cancelled until 12:30 PM",
    CancelTiming.AT_1130: "Cancelled at 11:30 AM",
    CancelTiming.AT_1230: "Cancelled at 12:30 PM",
}


# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

def determine_cancel_timing(can_be_grouped: bool, block: Block) -> CancelTiming:
    """
    Groupable clients can stay through lunch with a group, so their half-day
    cancellations end or start at the lunch boundary closest to the block.
    """
    if block == Block.ALL_DAY:
        return CancelTiming.ALL_DAY
    if not can_be_grouped:
        return CancelTiming.AT_1130 if block == Block.PM else CancelTiming.UNTIL_1230
    return CancelTiming.UNTIL_1130 if block == Block.AM else CancelTiming.AT_1230


def cancel_timing_description(timing: CancelTiming) -> str:
    return TIMING_DESCRIPTIONS.get(timing, "Cancelled")


def _format_date(d: date) -> str:
    return f"{d.month}/{d.day}/{d.year}"


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


# ---------------------------------------------------------------------------
# Protection and skip rules
# ---------------------------------------------------------------------------

def location_protection(locations: Iterable[ClientLocation], as_of: date) -> Optional[str]:
    """Reason string when a location is younger than the protection window."""
    for loc in locations:
        if loc.service_start_date is None:
            continue
        days_since_start = (as_of - loc.service_start_date).days
        if days_since_start < LOCATION_PROTECTION_DAYS:
            exempt_until = loc.service_start_date + timedelta(days=LOCATION_PROTECTION_DAYS)
            return (
                f"Not for cancel until {_format_date(exempt_until)} due to "
                f"{loc.location_type} sessions less than {LOCATION_PROTECTION_DAYS} days old."
            )
    return None


def new_hire_protection(
    client_id: str,
    sessions: Iterable[TrainingSession],
    staff: Dict[str, Staff],
    as_of: date,
) -> Optional[str]:
    for session in sessions:
        if session.client_id != client_id or session.status != "planned":
            continue
        if session.plan_status not in ("active", None) or session.training_track != NEW_HIRE_TRACK:
            continue
        if is_new_hire_protected(staff.get(session.trainee_id), as_of):
            return "Protected for new hire training session. Cancelling would disrupt trainee onboarding."
    return None


def skip_reason(client: Client, days_per_week: int) -> Optional[str]:
    """The later rule wins when both apply."""
    reason = None
    if 0 < days_per_week <= SKIP_MAX_DAYS_PER_WEEK and not client.cancel_skip_used:
        reason = f"2-day/week skip applied (attends {_plural(days_per_week, 'day')})"
    if (
        client.consecutive_absent_days >= SKIP_CONSECUTIVE_ABSENT_DAYS
        and client.days_back_since_absence < SKIP_RETURN_DAYS_NEEDED
    ):
        remaining = SKIP_RETURN_DAYS_NEEDED - client.days_back_since_absence
        reason = (
            f"5-consecutive-days absent skip applied "
            f"({_plural(remaining, 'more attendance day')} needed)"
        )
    return reason


def linked_client_ids(client_id: str, links: Iterable[CancelLink]) -> List[str]:
    """Sibling links are symmetric."""
    out = []
    for link in links:
        if link.client_id == client_id:
            out.append(link.linked_client_id)
        elif link.linked_client_id == client_id:
            out.append(link.client_id)
    return out


def scheduled_days(client_id: str, rows: Iterable[TemplateAssignment]) -> FrozenSet[str]:
    return frozenset(r.weekday for r in rows if r.client_id == client_id)


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------

def build_cancel_pool(
    gaps: Sequence[UncoveredGap],
    clients: Dict[str, Client],
    client_locations: Sequence[ClientLocation],
    cancel_links: Sequence[CancelLink],
    template_rows: Sequence[TemplateAssignment],
    as_of: date,
    training_sessions: Sequence[TrainingSession] = (),
    staff: Optional[Dict[str, Staff]] = None,
) -> List[CancelCandidate]:
    """One candidate per gapped client, in first-gap order."""
    blocks_by_client: Dict[str, List[Block]] = {}
    for gap in gaps:
        if gap.client_id not in clients:
            logger.warning(f"Gap references unknown client {gap.client_id}")
            continue
        blocks = blocks_by_client.setdefault(gap.client_id, [])
        if gap.block not in blocks:
            blocks.append(gap.block)

    candidates: List[CancelCandidate] = []
    for client_id, blocks in blocks_by_client.items():
        client = clients[client_id]
        locations = [loc for loc in client_locations if loc.client_id == client_id]

        protected_reason = location_protection(locations, as_of)
        if protected_reason is None and staff is not None:
            protected_reason = new_hire_protection(client_id, training_sessions, staff, as_of)

        reason = skip_reason(client, len(scheduled_days(client_id, template_rows)))

        candidate = CancelCandidate(
            client_id=client_id,
            client_name=client.name,
            gap_blocks=frozenset(blocks),
            can_be_grouped=client.can_be_grouped,
            cancel_all_day_only=client.cancel_all_day_only,
            last_canceled_date=client.last_canceled_date,
            is_protected=protected_reason is not None,
            protected_reason=protected_reason,
            is_skipped=reason is not None,
            skip_reason=reason,
            linked_client_ids=tuple(linked_client_ids(client_id, cancel_links)),
            critical_cancel_notes=client.critical_cancel_notes,
        )
        logger.debug(
            f"Cancel candidate {client.name}: blocks={sorted(b.value for b in blocks)} "
            f"protected={candidate.is_protected} skipped={candidate.is_skipped}"
        )
        candidates.append(candidate)
    return candidates


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def _rotation_key(c: CancelCandidate):
    # Never-cancelled clients first, then oldest cancellation
    if c.last_canceled_date is None:
        return (0, date.min)
    return (1, c.last_canceled_date)


def _decision(c: CancelCandidate, block: Block, skipped: Sequence[CancelCandidate]) -> CancelDecision:
    last = c.last_canceled_date.isoformat() if c.last_canceled_date else "Never"
    return CancelDecision(
        client_id=c.client_id,
        client_name=c.client_name,
        block=block,
        timing=determine_cancel_timing(c.can_be_grouped, block),
        reason=f"{c.client_name} selected for cancellation (last cancelled: {last})",
        linked_client_ids=c.linked_client_ids,
        skipped=tuple(skipped),
    )


def select_cancel_target(
    candidates: Sequence[CancelCandidate],
    prefer_full_day: bool = True,
) -> Optional[CancelDecision]:
    skipped = [c for c in candidates if not c.is_protected and c.is_skipped]
    eligible = sorted(
        (c for c in candidates if not c.is_protected and not c.is_skipped),
        key=_rotation_key,
    )
    if not eligible:
        if skipped:
            logger.info(f"No cancellation target; skipped: {[c.client_name for c in skipped]}")
        return None

    if prefer_full_day:
        full_day = next((c for c in eligible if c.has_am_gap and c.has_pm_gap), None)
        if full_day is None:
            full_day = next((c for c in eligible if c.cancel_all_day_only), None)
        if full_day is not None:
            return _decision(full_day, Block.ALL_DAY, skipped)

    target = eligible[0]
    if target.cancel_all_day_only or (target.has_am_gap and target.has_pm_gap):
        block = Block.ALL_DAY
    else:
        block = Block.AM if target.has_am_gap else Block.PM
    return _decision(target, block, skipped)


def select_all_cancellations(
    candidates: Sequence[CancelCandidate],
    prefer_full_day: bool = True,
) -> List[CancelDecision]:
    """Apply select_cancel_target until nothing eligible remains."""
    remaining = list(candidates)
    decisions: List[CancelDecision] = []
    while True:
        decision = select_cancel_target(remaining, prefer_full_day)
        if decision is None:
            break
        decisions.append(decision)
        logger.info(f"Cancel {decision.client_name}: {cancel_timing_description(decision.timing)}")
        remaining = [c for c in remaining if c.client_id != decision.client_id]
    return decisions
