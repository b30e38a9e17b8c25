"""
overlay.py — Same-day exceptions → unavailability sets.

  unavailable_clients        (out ∧ all day) ∨ cancelled
  lunch_unavailable_clients  the above, plus partial outs touching 11:00–12:30
  out_staff                  any staff "out" record, whatever the window
"""

import logging
from typing import Iterable

from clinic_scheduler.models import (
    ExceptionMode,
    ExceptionOverlay,
    ExceptionType,
    ScheduleException,
)
from clinic_scheduler.schedule_config import LUNCH_WINDOW_END, LUNCH_WINDOW_START
from clinic_scheduler.time_utils import time_ranges_overlap

logger = logging.getLogger(__name__)


def _client_fully_out(exc: ScheduleException) -> bool:
    if exc.mode == ExceptionMode.CANCELLED:
        return True
    return exc.mode == ExceptionMode.OUT and exc.all_day


def _client_out_over_lunch(exc: ScheduleException) -> bool:
    if _client_fully_out(exc):
        return True
    if exc.mode != ExceptionMode.OUT:
        return False
    if exc.start_minute is None or exc.end_minute is None:
        return False
    return time_ranges_overlap(exc.start_minute, exc.end_minute, LUNCH_WINDOW_START, LUNCH_WINDOW_END)


def build_overlay(exceptions: Iterable[ScheduleException]) -> ExceptionOverlay:
    unavailable = set()
    lunch_unavailable = set()
    out_staff = set()

    for exc in exceptions:
        if exc.type == ExceptionType.CLIENT:
            if _client_fully_out(exc):
                unavailable.add(exc.entity_id)
            if _client_out_over_lunch(exc):
                lunch_unavailable.add(exc.entity_id)
        elif exc.type == ExceptionType.STAFF and exc.mode == ExceptionMode.OUT:
            out_staff.add(exc.entity_id)

    logger.info(
        f"Exception overlay: {len(out_staff)} staff out, "
        f"{len(unavailable)} clients unavailable, "
        f"{len(lunch_unavailable)} clients away over lunch"
    )
    return ExceptionOverlay(
        unavailable_clients=frozenset(unavailable),
        lunch_unavailable_clients=frozenset(lunch_unavailable),
        out_staff=frozenset(out_staff),
    )
