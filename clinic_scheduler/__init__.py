"""
Clinic Daily Schedule Engine

Modules:
- coordinator: generate_daily_schedule, the per-day entry point
- lunch: lunch slot planning and lunch coverage matching
- repair / cancellations: staff-out substitutes and cancellation selection
- approvals / training: sign-off gating and training disruption flags
- config: CSV loaders for reference data
- constraints: finalization checks and input validation
"""

from .approvals import (
    check_all_day_staffing_approval,
    check_lead_approval,
    check_sub_approval,
    reconcile_approvals,
)
from .cancellations import build_cancel_pool, select_cancel_target
from .config import load_approved_subs, load_engine_data, load_exceptions
from .constraints import ScheduleChecker, can_finalize, validate_engine_data
from .coordinator import generate_daily_schedule
from .lunch import LunchContext, solve_lunch

__all__ = [
    "check_all_day_staffing_approval",
    "check_lead_approval",
    "check_sub_approval",
    "reconcile_approvals",
    "build_cancel_pool",
    "select_cancel_target",
    "load_approved_subs",
    "load_engine_data",
    "load_exceptions",
    "ScheduleChecker",
    "can_finalize",
    "validate_engine_data",
    "generate_daily_schedule",
    "LunchContext",
    "solve_lunch",
]
