"""
training.py — Flag today's training sessions hit by exceptions.

First matching rule wins, so a session gets at most one update:
  trainee out              → blocked
  training client away     → blocked
  trainer out              → disrupted
"""

import logging
from datetime import date
from typing import Iterable, List, Optional

from clinic_scheduler.models import (
    ExceptionOverlay,
    TrainingSession,
    TrainingSessionUpdate,
    TrainingStatus,
)

logger = logging.getLogger(__name__)


def is_active_session(session: TrainingSession, today: date) -> bool:
    return (
        session.scheduled_date == today
        and session.status == "planned"
        and session.plan_status in ("active", None)
    )


def check_training_disruption(
    session: TrainingSession,
    overlay: ExceptionOverlay,
) -> Optional[TrainingSessionUpdate]:
    if session.trainee_id in overlay.out_staff:
        return TrainingSessionUpdate(session.id, TrainingStatus.BLOCKED, "Trainee is unavailable (marked OUT)")
    if session.client_id in overlay.unavailable_clients:
        return TrainingSessionUpdate(session.id, TrainingStatus.BLOCKED, "Training client is unavailable")
    trainer_id = session.trainer_id or session.preferred_trainer_id
    if trainer_id and trainer_id in overlay.out_staff:
        return TrainingSessionUpdate(session.id, TrainingStatus.DISRUPTED, "Assigned trainer is unavailable")
    return None


def process_training_sessions(
    sessions: Iterable[TrainingSession],
    overlay: ExceptionOverlay,
    today: date,
) -> List[TrainingSessionUpdate]:
    updates = []
    for session in sessions:
        if not is_active_session(session, today):
            continue
        update = check_training_disruption(session, overlay)
        if update is not None:
            updates.append(update)
    if updates:
        logger.info(f"{len(updates)} training session(s) affected by today's exceptions")
    return updates
