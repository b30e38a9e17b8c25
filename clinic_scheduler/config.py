"""
config.py — Reference data loader for the clinic scheduler

Loads one clinic's reference data from a directory of CSV files:

  staff.csv              required
  clients.csv            required
  template.csv           required   weekly AM/PM template rows
  ideal_day.csv          optional   day-specific segment overrides
  client_locations.csv   optional
  schools.csv            optional
  cancel_links.csv       optional
  training_sessions.csv  optional
  exceptions.csv         optional   today's staff/client in-out records
  approved_subs.csv      optional

Id lists are semicolon-separated (e.g.  s1;s4;s9). Client weekly schedules
are JSON in the `schedule` column:
  {"mon": {"start": "8:30", "end": "15:00"}, "tue": {"am_start": "8:30", "am_end": "11:30"}}
Times are "H:MM" (24-hour) or plain minutes after midnight.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, TypeVar

from clinic_scheduler.models import (
    ApprovedSub,
    CancelLink,
    Client,
    ClientLocation,
    DaySchedule,
    EngineData,
    ExceptionMode,
    ExceptionType,
    IdealDaySegment,
    Role,
    School,
    ScheduleException,
    Staff,
    TemplateAssignment,
    TrainingSession,
)
from clinic_scheduler.schedule_config import WEEKDAY_KEYS, Block
from clinic_scheduler.time_utils import time_string_to_minutes

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config" / "sample"

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:   # NaN
        return True
    s = str(value).strip()
    return not s or s.lower() == "nan"


def _text(value: Any) -> Optional[str]:
    return None if _is_blank(value) else str(value).strip()


def _parse_yes_no(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if _is_blank(value):
        return default
    return str(value).strip().lower() in ("yes", "true", "1", "y")


def _parse_int(value: Any, default: int = 0) -> int:
    if _is_blank(value):
        return default
    return int(float(str(value).strip()))


def _parse_id_list(raw: Any) -> FrozenSet[str]:
    if _is_blank(raw):
        return frozenset()
    return frozenset(p.strip() for p in str(raw).split(";") if p.strip())


def _parse_weekdays(raw: Any) -> FrozenSet[str]:
    days = {d.lower()[:3] for d in _parse_id_list(raw)}
    unknown = days - set(WEEKDAY_KEYS)
    if unknown:
        raise ValueError(f"unknown weekday(s) {sorted(unknown)}")
    return frozenset(days)


def _parse_combos(raw: Any) -> FrozenSet[FrozenSet[str]]:
    """'c1+c2;c3+c4' → {{c1, c2}, {c3, c4}}"""
    return frozenset(
        frozenset(p.strip() for p in combo.split("+") if p.strip())
        for combo in _parse_id_list(raw)
    )


def _parse_date(raw: Any) -> Optional[date]:
    if _is_blank(raw):
        return None
    return date.fromisoformat(str(raw).strip()[:10])


def _parse_minutes(raw: Any) -> Optional[int]:
    if _is_blank(raw):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    s = str(raw).strip()
    if ":" in s:
        return time_string_to_minutes(s)
    return int(float(s))


def _parse_block(raw: Any) -> Block:
    return Block(str(raw).strip().upper())


def _parse_weekday(raw: Any) -> str:
    day = str(raw).strip().lower()[:3]
    if day not in WEEKDAY_KEYS:
        raise ValueError(f"unknown weekday {raw!r}")
    return day


def _parse_role(raw: Any) -> Role:
    if _is_blank(raw):
        return Role.RBT
    s = str(raw).strip()
    for role in Role:
        if s.lower() in (role.value.lower(), role.name.lower()):
            return role
    raise ValueError(f"unknown role {raw!r}")


def _parse_schedule(raw: Any) -> Dict[str, DaySchedule]:
    if _is_blank(raw):
        return {}
    data = json.loads(str(raw))
    schedule: Dict[str, DaySchedule] = {}
    for day, entry in data.items():
        schedule[_parse_weekday(day)] = DaySchedule(
            enabled=_parse_yes_no(entry.get("enabled"), default=True),
            start=_parse_minutes(entry.get("start")),
            end=_parse_minutes(entry.get("end")),
            am_start=_parse_minutes(entry.get("am_start")),
            am_end=_parse_minutes(entry.get("am_end")),
            pm_start=_parse_minutes(entry.get("pm_start")),
            pm_end=_parse_minutes(entry.get("pm_end")),
        )
    return schedule


# ---------------------------------------------------------------------------
# CSV plumbing
# ---------------------------------------------------------------------------

def _read_rows(path: Path, required: bool) -> List[Dict[str, Any]]:
    import pandas as pd

    if not path.exists():
        if required:
            raise FileNotFoundError(f"Required data file not found: {path}")
        logger.warning(f"{path.name} not found in {path.parent}. Using no rows.")
        return []

    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    return df.to_dict(orient="records")


def _load(path: Path, required: bool, parse_row: Callable[[Dict[str, Any]], T]) -> Tuple[T, ...]:
    records = []
    for i, row in enumerate(_read_rows(path, required), start=2):   # header is line 1
        try:
            records.append(parse_row(row))
        except (KeyError, ValueError, TypeError) as exc:
            raise ValueError(f"{path.name} line {i}: {exc}") from exc
    logger.info(f"Loaded {len(records)} rows from {path.name}")
    return tuple(records)


# ---------------------------------------------------------------------------
# Row parsers
# ---------------------------------------------------------------------------

def _staff_row(row: Dict[str, Any]) -> Staff:
    return Staff(
        id=str(row["id"]).strip(),
        name=str(row["name"]).strip(),
        role=_parse_role(row.get("role")),
        active=_parse_yes_no(row.get("active"), default=True),
        sub_eligible=_parse_yes_no(row.get("sub_eligible")),
        lead_level=_parse_int(row.get("lead_level")),
        no_lunch=_parse_yes_no(row.get("no_lunch")),
        no_late_lunches=_parse_yes_no(row.get("no_late_lunches")),
        hire_date=_parse_date(row.get("hire_date")),
        new_hire_override=_parse_yes_no(row.get("new_hire_override")),
        bcba_prep_enabled=_parse_yes_no(row.get("bcba_prep_enabled")),
        bcba_prep_am_days=_parse_weekdays(row.get("bcba_prep_am_days")),
        bcba_prep_pm_days=_parse_weekdays(row.get("bcba_prep_pm_days")),
    )


def _client_row(row: Dict[str, Any]) -> Client:
    return Client(
        id=str(row["id"]).strip(),
        name=str(row["name"]).strip(),
        active=_parse_yes_no(row.get("active"), default=True),
        default_location=_text(row.get("default_location")),
        schedule=_parse_schedule(row.get("schedule")),
        excluded_staff_ids=_parse_id_list(row.get("excluded_staff_ids")),
        no_longer_trained_ids=_parse_id_list(row.get("no_longer_trained_ids")),
        focus_staff_ids=_parse_id_list(row.get("focus_staff_ids")),
        trained_staff_ids=_parse_id_list(row.get("trained_staff_ids")),
        lunch_coverage_staff_ids=_parse_id_list(row.get("lunch_coverage_staff_ids")),
        lunch_coverage_excluded_staff_ids=_parse_id_list(row.get("lunch_coverage_excluded_staff_ids")),
        float_rbts_allowed=_parse_yes_no(row.get("float_rbts_allowed")),
        allowed_float_rbt_ids=_parse_id_list(row.get("allowed_float_rbt_ids")),
        lead_rbts_allowed=_parse_yes_no(row.get("lead_rbts_allowed")),
        allowed_lead_rbt_ids=_parse_id_list(row.get("allowed_lead_rbt_ids")),
        allow_sub=_parse_yes_no(row.get("allow_sub"), default=True),
        can_be_grouped=_parse_yes_no(row.get("can_be_grouped")),
        allowed_lunch_peer_ids=_parse_id_list(row.get("allowed_lunch_peer_ids")),
        no_first_lunch_peer_ids=_parse_id_list(row.get("no_first_lunch_peer_ids")),
        no_second_lunch_peer_ids=_parse_id_list(row.get("no_second_lunch_peer_ids")),
        allow_groups_of_3=_parse_yes_no(row.get("allow_groups_of_3")),
        allow_groups_of_4=_parse_yes_no(row.get("allow_groups_of_4")),
        disallowed_group_combos=_parse_combos(row.get("disallowed_group_combos")),
        is_group_leader=_parse_yes_no(row.get("is_group_leader")),
        group_leader_name=_text(row.get("group_leader_name")),
        group_leader_name_first_lunch=_text(row.get("group_leader_name_first_lunch")),
        group_leader_name_second_lunch=_text(row.get("group_leader_name_second_lunch")),
        cancel_all_day_only=_parse_yes_no(row.get("cancel_all_day_only")),
        last_canceled_date=_parse_date(row.get("last_canceled_date")),
        consecutive_absent_days=_parse_int(row.get("consecutive_absent_days")),
        days_back_since_absence=_parse_int(row.get("days_back_since_absence")),
        cancel_skip_used=_parse_yes_no(row.get("cancel_skip_used")),
        critical_cancel_notes=_text(row.get("critical_cancel_notes")),
    )


def _template_row(row: Dict[str, Any]) -> TemplateAssignment:
    return TemplateAssignment(
        weekday=_parse_weekday(row["weekday"]),
        block=_parse_block(row["block"]),
        staff_id=str(row["staff_id"]).strip(),
        client_id=_text(row.get("client_id")),
        location_id=_text(row.get("location_id")),
        start_minute=_parse_minutes(row.get("start")),
        end_minute=_parse_minutes(row.get("end")),
    )


def _ideal_row(row: Dict[str, Any]) -> IdealDaySegment:
    return IdealDaySegment(
        weekday=_parse_weekday(row["weekday"]),
        staff_id=str(row["staff_id"]).strip(),
        start_minute=_parse_minutes(row["start"]),
        end_minute=_parse_minutes(row["end"]),
        segment_type=_text(row.get("segment_type")) or "client",
        client_id=_text(row.get("client_id")),
        location_id=_text(row.get("location_id")),
    )


def _location_row(row: Dict[str, Any]) -> ClientLocation:
    return ClientLocation(
        id=str(row["id"]).strip(),
        client_id=str(row["client_id"]).strip(),
        location_type=_text(row.get("location_type")) or "clinic",
        display_name=_text(row.get("display_name")),
        school_id=_text(row.get("school_id")),
        service_start_date=_parse_date(row.get("service_start_date")),
    )


def _school_row(row: Dict[str, Any]) -> School:
    start = _parse_minutes(row.get("lunch_window_start"))
    end = _parse_minutes(row.get("lunch_window_end"))
    return School(
        id=str(row["id"]).strip(),
        name=str(row["name"]).strip(),
        has_alternative_lunch=_parse_yes_no(row.get("has_alternative_lunch")),
        lunch_window_start=start if start is not None else 690,
        lunch_window_end=end if end is not None else 750,
    )


def _cancel_link_row(row: Dict[str, Any]) -> CancelLink:
    return CancelLink(
        client_id=str(row["client_id"]).strip(),
        linked_client_id=str(row["linked_client_id"]).strip(),
    )


def _training_row(row: Dict[str, Any]) -> TrainingSession:
    block = _text(row.get("scheduled_block"))
    return TrainingSession(
        id=str(row["id"]).strip(),
        plan_id=str(row["plan_id"]).strip(),
        trainee_id=str(row["trainee_id"]).strip(),
        client_id=str(row["client_id"]).strip(),
        trainer_id=_text(row.get("trainer_id")),
        preferred_trainer_id=_text(row.get("preferred_trainer_id")),
        stage=_text(row.get("stage")) or "",
        scheduled_date=_parse_date(row.get("scheduled_date")),
        scheduled_block=_parse_block(block) if block else None,
        status=_text(row.get("status")) or "planned",
        training_track=_text(row.get("training_track")) or "",
        plan_status=_text(row.get("plan_status")),
    )


def _exception_row(row: Dict[str, Any]) -> ScheduleException:
    return ScheduleException(
        id=str(row["id"]).strip(),
        type=ExceptionType(str(row["type"]).strip().lower()),
        entity_id=str(row["entity_id"]).strip(),
        mode=ExceptionMode(str(row["mode"]).strip().lower()),
        all_day=_parse_yes_no(row.get("all_day"), default=True),
        start_minute=_parse_minutes(row.get("start")),
        end_minute=_parse_minutes(row.get("end")),
    )


def _approved_sub_row(row: Dict[str, Any]) -> ApprovedSub:
    return ApprovedSub(
        client_id=str(row["client_id"]).strip(),
        block=_parse_block(row["block"]),
        sub_staff_id=str(row["sub_staff_id"]).strip(),
    )


# ---------------------------------------------------------------------------
# Public loaders
# ---------------------------------------------------------------------------

def load_engine_data(data_dir: Optional[Path] = None) -> EngineData:
    """Load every reference file in `data_dir` (default: config/sample/)."""
    base = Path(data_dir) if data_dir is not None else DEFAULT_CONFIG_DIR
    data = EngineData(
        staff=_load(base / "staff.csv", True, _staff_row),
        clients=_load(base / "clients.csv", True, _client_row),
        template_assignments=_load(base / "template.csv", True, _template_row),
        ideal_day_segments=_load(base / "ideal_day.csv", False, _ideal_row),
        client_locations=_load(base / "client_locations.csv", False, _location_row),
        schools=_load(base / "schools.csv", False, _school_row),
        cancel_links=_load(base / "cancel_links.csv", False, _cancel_link_row),
        training_sessions=_load(base / "training_sessions.csv", False, _training_row),
    )
    logger.info(
        f"Engine data from {base}: {len(data.staff)} staff, {len(data.clients)} clients, "
        f"{len(data.template_assignments)} template rows"
    )
    return data


def load_exceptions(data_dir: Optional[Path] = None) -> Tuple[ScheduleException, ...]:
    base = Path(data_dir) if data_dir is not None else DEFAULT_CONFIG_DIR
    return _load(base / "exceptions.csv", False, _exception_row)


def load_approved_subs(data_dir: Optional[Path] = None) -> Tuple[ApprovedSub, ...]:
    base = Path(data_dir) if data_dir is not None else DEFAULT_CONFIG_DIR
    return _load(base / "approved_subs.csv", False, _approved_sub_row)
