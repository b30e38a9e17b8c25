"""
dry_run.py — One day's schedule from a data directory (nothing is persisted upstream)

Full orchestration:
  1. Load reference data, today's exceptions and approved subs
  2. Validate inputs (duplicate ids, dangling references, inverted windows)
  3. Generate the daily schedule
  4. Finalization check (hard + soft)
  5. Write the JSON run log and print a summary

Usage:
  python -m clinic_scheduler.dry_run --data-dir config/sample --date 2026-03-02
  python -m clinic_scheduler.dry_run --data-dir config/sample --date 2026-03-02 --no-cancel
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from clinic_scheduler.config import (
    DEFAULT_CONFIG_DIR,
    PROJECT_ROOT,
    load_approved_subs,
    load_engine_data,
    load_exceptions,
)
from clinic_scheduler.constraints import ScheduleChecker, validate_engine_data
from clinic_scheduler.coordinator import generate_daily_schedule
from clinic_scheduler.models import EngineResult, ScheduleSlot
from clinic_scheduler.time_utils import minutes_to_time_string

logger = logging.getLogger(__name__)

OUTPUTS_DIR = PROJECT_ROOT / "outputs"


# ---------------------------------------------------------------------------
# JSON run log
# ---------------------------------------------------------------------------

def _slot_dict(slot: ScheduleSlot) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": slot.id,
        "block": slot.label,
        "value": slot.value,
        "source": slot.source.value,
        "reason": slot.reason,
        "client_id": slot.client_id,
        "location": slot.location,
    }
    if slot.segments:
        out["segments"] = [
            {
                "start": minutes_to_time_string(s.start_minute),
                "end": minutes_to_time_string(s.end_minute),
                "value": s.value,
                "source": s.source.value,
                "reason": s.reason,
                "client_id": s.client_id,
                "location": s.location,
            }
            for s in slot.segments
        ]
    return out


def result_to_dict(result: EngineResult) -> Dict[str, Any]:
    lunch_times = {}
    if result.lunch is not None:
        lunch_times = {sid: t.value for sid, t in sorted(result.lunch.plan.lunch_times.items())}
    return {
        "weekday": result.weekday,
        "schedule": [
            {
                "staff_id": s.staff_id,
                "staff_name": s.staff_name,
                "status": s.status,
                "slots": [_slot_dict(slot) for slot in s.slots],
            }
            for s in result.schedule
        ],
        "lunch_times": lunch_times,
        "lunch_coverage_errors": [
            {"client_id": e.client_id, "client_name": e.client_name,
             "lunch_time": e.lunch_time.value, "reason": e.reason}
            for e in result.lunch_coverage_errors
        ],
        "pending_approvals": [
            {"id": a.id, "type": a.type.value, "client_id": a.client_id,
             "block": a.block.value, "proposed_staff_id": a.proposed_staff_id,
             "reason": a.reason, "status": a.status.value}
            for a in result.pending_approvals
        ],
        "substitutions": [
            {"client_id": s.client_id, "block": s.block.value,
             "original_staff_id": s.original_staff_id, "sub_staff_id": s.sub_staff_id,
             "priority": s.priority, "pending": s.pending}
            for s in result.substitutions
        ],
        "cancellations": [
            {"client_id": d.client_id, "client_name": d.client_name, "block": d.block.value,
             "timing": d.timing.value, "reason": d.reason,
             "linked_client_ids": list(d.linked_client_ids),
             "skipped": [{"client_id": c.client_id, "reason": c.skip_reason} for c in d.skipped]}
            for d in result.cancel_decisions
        ],
        "training_session_updates": [
            {"session_id": u.session_id, "status": u.status.value, "reason": u.reason}
            for u in result.training_session_updates
        ],
    }


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def run_dry_run(
    run_date: date,
    data_dir: Path = DEFAULT_CONFIG_DIR,
    output_dir: Path = OUTPUTS_DIR,
    repair: bool = True,
    cancel: bool = True,
) -> Dict[str, Any]:
    """
    Generate one day's schedule and write `<date>_daily_run.json`.

    Returns:
        Dict with result, violations and output path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    sep = "=" * 70

    print(f"\n{sep}")
    print(f"  DRY RUN — daily schedule for {run_date.isoformat()} ({run_date.strftime('%A')})")
    print(f"  Data: {data_dir}")
    print(f"{sep}\n")

    # Step 1
    print("Step 1/5: Loading data...")
    data = load_engine_data(data_dir)
    exceptions = load_exceptions(data_dir)
    approved_subs = load_approved_subs(data_dir)
    print(
        f"  ✓ {len(data.staff)} staff | {len(data.clients)} clients | "
        f"{len(data.template_assignments)} template rows | {len(exceptions)} exceptions"
    )

    # Step 2
    print("\nStep 2/5: Validating inputs...")
    errors, warnings = validate_engine_data(data)
    for err in errors:
        print(f"  ✗ DATA ERROR: {err}")
    for w in warnings:
        print(f"  ⚠ WARNING: {w}")
    if errors:
        print("\n  ✗ Cannot proceed — fix data errors above.")
        sys.exit(1)
    print("  ✓ Data valid")

    # Step 3
    print("\nStep 3/5: Generating schedule...")
    result = generate_daily_schedule(
        exceptions,
        data,
        approved_subs,
        day_of_week=run_date.weekday(),
        as_of=run_date,
        repair_gaps=repair,
        select_cancellations=cancel,
    )
    print(f"  ✓ {len(result.schedule)} staff scheduled ({result.weekday} template)")
    print(f"  ✓ {len(result.substitutions)} substitution(s), {len(result.cancel_decisions)} cancellation(s)")

    # Step 4
    print("\nStep 4/5: Finalization check...")
    hard, soft = ScheduleChecker(result).check_all()
    status = "✓" if not hard else "✗"
    print(f"  {status} Hard violations: {len(hard)}")
    print(f"    Soft violations: {len(soft)}")
    for v in hard:
        print(f"    {v}")

    # Step 5
    print("\nStep 5/5: Writing run log...")
    log_path = output_dir / f"{run_date.isoformat()}_daily_run.json"
    payload = result_to_dict(result)
    payload["hard_violations"] = [str(v) for v in hard]
    payload["soft_violations"] = [str(v) for v in soft]
    with open(log_path, "w") as f:
        json.dump(payload, f, indent=2)
    print(f"  ✓ Run log: {log_path.name}")

    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Lunch coverage errors: {len(result.lunch_coverage_errors)}")
    print(f"  Pending approvals:     {len(result.pending_approvals)}")
    print(f"  Training updates:      {len(result.training_session_updates)}")
    print(f"  Ready to finalize:     {'yes' if not hard else 'no'}")
    print(f"\n{sep}\n")

    return {
        "result": result,
        "hard_violations": hard,
        "soft_violations": soft,
        "outputs": {"log": log_path},
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Generate one day's clinic schedule (dry run)")
    parser.add_argument("--data-dir",   default=None, help="Directory with the CSV data files (default: config/sample/)")
    parser.add_argument("--date",       required=True, help="Schedule date YYYY-MM-DD")
    parser.add_argument("--output-dir", default=None, help="Output directory (default: outputs/)")
    parser.add_argument("--no-repair",  action="store_true", help="Leave staff-out gaps unfilled")
    parser.add_argument("--no-cancel",  action="store_true", help="Skip cancellation selection")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        run_date = datetime.strptime(args.date, "%Y-%m-%d").date()
    except ValueError as e:
        print(f"Invalid date format: {e}")
        sys.exit(1)

    data_dir = Path(args.data_dir) if args.data_dir else DEFAULT_CONFIG_DIR
    out_dir = Path(args.output_dir) if args.output_dir else OUTPUTS_DIR
    try:
        run_dry_run(
            run_date,
            data_dir=data_dir,
            output_dir=out_dir,
            repair=not args.no_repair,
            cancel=not args.no_cancel,
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"  ✗ {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
