"""
tests/test_training.py — Training session disruption rules.
"""

import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from clinic_scheduler.models import ExceptionOverlay, TrainingSession, TrainingStatus
from clinic_scheduler.training import (
    check_training_disruption,
    is_active_session,
    process_training_sessions,
)

TODAY = date(2026, 3, 2)


def session(id_="t1", trainer_id="tr", **kw):
    kw.setdefault("scheduled_date", TODAY)
    return TrainingSession(id_, "p1", "tn", "c1", trainer_id=trainer_id, **kw)


class TestDisruption:

    def test_trainee_out_blocks(self):
        update = check_training_disruption(session(), ExceptionOverlay(out_staff=frozenset({"tn"})))
        assert update.status == TrainingStatus.BLOCKED
        assert update.reason == "Trainee is unavailable (marked OUT)"

    def test_client_away_blocks(self):
        update = check_training_disruption(session(), ExceptionOverlay(unavailable_clients=frozenset({"c1"})))
        assert update.status == TrainingStatus.BLOCKED
        assert update.reason == "Training client is unavailable"

    def test_trainer_out_disrupts(self):
        update = check_training_disruption(session(), ExceptionOverlay(out_staff=frozenset({"tr"})))
        assert update.status == TrainingStatus.DISRUPTED

    def test_preferred_trainer_used_without_assigned(self):
        s = session(trainer_id=None, preferred_trainer_id="pt")
        update = check_training_disruption(s, ExceptionOverlay(out_staff=frozenset({"pt"})))
        assert update.status == TrainingStatus.DISRUPTED

    def test_first_rule_wins(self):
        overlay = ExceptionOverlay(out_staff=frozenset({"tn", "tr"}), unavailable_clients=frozenset({"c1"}))
        assert check_training_disruption(session(), overlay).reason == "Trainee is unavailable (marked OUT)"

    def test_nothing_wrong(self):
        assert check_training_disruption(session(), ExceptionOverlay()) is None


class TestActiveSessions:

    def test_only_todays_planned_sessions(self):
        assert is_active_session(session(), TODAY)
        assert not is_active_session(session(scheduled_date=date(2026, 3, 3)), TODAY)
        assert not is_active_session(session(status="completed"), TODAY)
        assert not is_active_session(session(plan_status="paused"), TODAY)
        assert is_active_session(session(plan_status="active"), TODAY)

    def test_process_skips_inactive(self):
        overlay = ExceptionOverlay(out_staff=frozenset({"tn"}))
        sessions = [session("a"), session("b", status="cancelled"), session("c", scheduled_date=None)]
        updates = process_training_sessions(sessions, overlay, TODAY)
        assert [u.session_id for u in updates] == ["a"]
