# backend/aligner_missions/services/lifecycle.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from aligner_missions.errors import BusinessRuleViolation
from aligner_missions.models.enums import MissionStatus, OPEN_STATUSES
from aligner_missions.models.patient_mission import PatientMission

logger = logging.getLogger(__name__)

# forward-only; reset is handled separately
_ALLOWED = {
    MissionStatus.AVAILABLE: {
        MissionStatus.IN_PROGRESS,
        MissionStatus.COMPLETED,
        MissionStatus.FAILED,
        MissionStatus.EXPIRED,
    },
    MissionStatus.IN_PROGRESS: {
        MissionStatus.COMPLETED,
        MissionStatus.FAILED,
        MissionStatus.EXPIRED,
    },
}


def transition(mission: PatientMission, status: MissionStatus, now: datetime) -> PatientMission:
    current = MissionStatus(mission.status)
    if current == status:
        return mission
    if status not in _ALLOWED.get(current, set()):
        raise BusinessRuleViolation(f"Mission {mission.id} is {current.value}; cannot move to {status.value}")
    mission.status = status
    if status == MissionStatus.COMPLETED:
        mission.completed_at = now
    return mission


def reset(mission: PatientMission, now: datetime) -> PatientMission:
    """Manual reset: back to a fresh 'available' instance. Terminal missions stay put."""
    if not mission.is_open:
        raise BusinessRuleViolation(f"Mission {mission.id} is {mission.status.value} and cannot be reset")
    mission.status = MissionStatus.AVAILABLE
    mission.progress = 0
    mission.streak_last_date = None
    mission.elapsed_seconds = 0
    mission.started_at = now
    return mission


def expire_if_due(mission: PatientMission, now: datetime) -> bool:
    if not mission.is_past_due(now):
        return False
    mission.status = MissionStatus.EXPIRED
    logger.info(f"[lifecycle] Mission {mission.id} expired (expires_at={mission.expires_at})")
    return True


def expire_overdue(db: Session, patient_id: int, now: datetime) -> List[PatientMission]:
    """Lazily expire every open mission of the patient whose expires_at passed."""
    rows = db.scalars(
        select(PatientMission).where(
            PatientMission.patient_id == patient_id,
            PatientMission.status.in_(OPEN_STATUSES),
            PatientMission.expires_at.is_not(None),
            PatientMission.expires_at < now,
        )
    ).all()
    if not rows:
        return []
    try:
        with db.begin_nested():
            for m in rows:
                expire_if_due(m, now)
    except StaleDataError:
        # another request touched one of them first; it will be re-checked next read
        logger.debug(f"[lifecycle] Lazy expiry for patient {patient_id} lost a race")
        return []
    return list(rows)
