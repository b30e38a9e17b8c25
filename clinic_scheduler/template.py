"""
template.py — Weekly template + ideal-day overrides → one resolved day.

Template rows sharing (weekday, block, staff) describe a multi-segment block
(drive time, support, two clients). They are merged into one
ResolvedAssignment whose primary client is the earliest row with a client and
whose segments list every row in start order.

Ideal-day segments for the target weekday replace the template for that day
only. Only "client" segments are scheduled; AM holds segments that start
before 11:30 and end by 12:30, PM holds segments starting at 12:00 or later.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from clinic_scheduler.models import (
    AssignmentSegment,
    DayTemplate,
    EngineData,
    IdealDaySegment,
    ResolvedAssignment,
    TemplateAssignment,
)
from clinic_scheduler.schedule_config import (
    AM_BLOCK_END,
    DEFAULT_AM_SEGMENT,
    DEFAULT_PM_SEGMENT,
    PM_BLOCK_START,
    Block,
)

logger = logging.getLogger(__name__)

IDEAL_AM_LATEST_END = AM_BLOCK_END + 60
IDEAL_PM_EARLIEST_START = PM_BLOCK_START - 30


# ---------------------------------------------------------------------------
# Template rows
# ---------------------------------------------------------------------------

def _merge_rows(staff_id: str, block: Block, rows: Sequence[TemplateAssignment]) -> ResolvedAssignment:
    if len(rows) == 1:
        row = rows[0]
        return ResolvedAssignment(
            staff_id=staff_id,
            block=block,
            client_id=row.client_id,
            location_id=row.location_id,
            start_minute=row.start_minute,
            end_minute=row.end_minute,
        )

    ordered = sorted(rows, key=lambda r: r.start_minute if r.start_minute is not None else 0)
    with_client = [r for r in ordered if r.client_id is not None]
    primary = with_client[0] if with_client else ordered[0]

    default_start, default_end = DEFAULT_AM_SEGMENT if block == Block.AM else DEFAULT_PM_SEGMENT
    segments = tuple(
        AssignmentSegment(
            start_minute=r.start_minute if r.start_minute is not None else default_start,
            end_minute=r.end_minute if r.end_minute is not None else default_end,
            client_id=r.client_id,
            location_id=r.location_id,
        )
        for r in ordered
    )
    return ResolvedAssignment(
        staff_id=staff_id,
        block=block,
        client_id=primary.client_id,
        location_id=primary.location_id,
        start_minute=segments[0].start_minute,
        end_minute=segments[-1].end_minute,
        segments=segments,
    )


def build_weekly_template(rows: Iterable[TemplateAssignment]) -> Dict[str, DayTemplate]:
    """Group template rows per weekday into DayTemplates."""
    grouped: Dict[Tuple[str, Block, str], List[TemplateAssignment]] = {}
    for row in rows:
        if row.block not in (Block.AM, Block.PM):
            logger.warning(f"Ignoring template row with block {row.block.value} for staff {row.staff_id}")
            continue
        grouped.setdefault((row.weekday, row.block, row.staff_id), []).append(row)

    am: Dict[str, List[ResolvedAssignment]] = {}
    pm: Dict[str, List[ResolvedAssignment]] = {}
    for (weekday, block, staff_id), group in grouped.items():
        merged = _merge_rows(staff_id, block, group)
        target = am if block == Block.AM else pm
        target.setdefault(weekday, []).append(merged)

    weekdays = sorted(set(am) | set(pm))
    return {
        day: DayTemplate(weekday=day, am=tuple(am.get(day, [])), pm=tuple(pm.get(day, [])))
        for day in weekdays
    }


# ---------------------------------------------------------------------------
# Ideal-day overrides
# ---------------------------------------------------------------------------

def _assignment_from_segments(
    staff_id: str, block: Block, segments: Sequence[IdealDaySegment]
) -> ResolvedAssignment:
    ordered = sorted(segments, key=lambda s: s.start_minute)
    first = ordered[0]
    if len(ordered) == 1:
        return ResolvedAssignment(
            staff_id=staff_id,
            block=block,
            client_id=first.client_id,
            location_id=first.location_id,
            start_minute=first.start_minute,
            end_minute=first.end_minute,
        )
    return ResolvedAssignment(
        staff_id=staff_id,
        block=block,
        client_id=first.client_id,
        location_id=first.location_id,
        start_minute=ordered[0].start_minute,
        end_minute=ordered[-1].end_minute,
        segments=tuple(
            AssignmentSegment(s.start_minute, s.end_minute, s.client_id, s.location_id)
            for s in ordered
        ),
    )


def build_day_from_ideal_segments(segments: Iterable[IdealDaySegment], weekday: str) -> DayTemplate:
    by_staff: Dict[str, List[IdealDaySegment]] = {}
    for seg in segments:
        if seg.weekday != weekday or seg.segment_type != "client" or not seg.client_id:
            continue
        by_staff.setdefault(seg.staff_id, []).append(seg)

    am: List[ResolvedAssignment] = []
    pm: List[ResolvedAssignment] = []
    for staff_id, staff_segments in by_staff.items():
        am_segs = [
            s for s in staff_segments
            if s.start_minute < AM_BLOCK_END and s.end_minute <= IDEAL_AM_LATEST_END
        ]
        pm_segs = [s for s in staff_segments if s.start_minute >= IDEAL_PM_EARLIEST_START]
        if am_segs:
            am.append(_assignment_from_segments(staff_id, Block.AM, am_segs))
        if pm_segs:
            pm.append(_assignment_from_segments(staff_id, Block.PM, pm_segs))

    return DayTemplate(weekday=weekday, am=tuple(am), pm=tuple(pm))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def resolve_day_template(
    weekday: str,
    template_rows: Iterable[TemplateAssignment],
    ideal_segments: Optional[Iterable[IdealDaySegment]] = None,
) -> DayTemplate:
    """
    Resolve one weekday. Every call builds new records, so two computations
    never share assignment state.
    """
    todays_ideal = [s for s in (ideal_segments or ()) if s.weekday == weekday]
    if todays_ideal:
        day = build_day_from_ideal_segments(todays_ideal, weekday)
        logger.info(
            f"Ideal day override for {weekday}: {len(day.am)} AM / {len(day.pm)} PM assignments"
        )
        return day

    weekly = build_weekly_template(template_rows)
    day = weekly.get(weekday, DayTemplate(weekday=weekday))
    logger.info(f"Template for {weekday}: {len(day.am)} AM / {len(day.pm)} PM assignments")
    return day


def resolve_from_engine_data(data: EngineData, weekday: str) -> DayTemplate:
    """Resolve from engine data, leaving out rows for inactive clients."""
    inactive = {c.id for c in data.clients if not c.active}
    rows = [r for r in data.template_assignments if r.client_id not in inactive]
    segments = [s for s in data.ideal_day_segments if s.client_id not in inactive]
    dropped = len(data.template_assignments) - len(rows) + len(data.ideal_day_segments) - len(segments)
    if dropped:
        logger.info(f"Skipped {dropped} row(s) for inactive clients")
    return resolve_day_template(weekday, rows, segments)
