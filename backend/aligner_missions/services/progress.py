# backend/aligner_missions/services/progress.py
"""
Progress tracking: apply domain events to open missions and resolve completion.

Completion is transition-triggered. The reward is emitted only on the update
that moves a mission into 'completed', inside the same SAVEPOINT as the status
change. PatientMission carries a version column, so when two writers race the
loser's flush raises StaleDataError; it re-reads the row and re-applies its
event against the fresh state (a completed mission then ignores it).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from aligner_missions.errors import BusinessRuleViolation, ValidationError
from aligner_missions.models.enums import CompletionCriteria, EventKind, MissionStatus, TimeUnit
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.services import ledger
from aligner_missions.services.lifecycle import expire_if_due, transition

logger = logging.getLogger(__name__)

MAX_RETRIES = 3

UNIT_SECONDS = {
    TimeUnit.SECONDS: 1,
    TimeUnit.MINUTES: 60,
    TimeUnit.HOURS: 3600,
}


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    occurred_at: datetime
    amount: int = 1
    numerator: Optional[float] = None
    denominator: Optional[float] = None
    seconds: Optional[int] = None


# ----------------------------------------------------------------------
# Per-criteria update rules (pure: mission state in, new progress out)
# ----------------------------------------------------------------------
def _total_count(mission: PatientMission, event: ProgressEvent) -> int:
    if event.amount < 0:
        raise ValidationError("Event amount must be >= 0")
    return mission.progress + event.amount


def _days_streak(mission: PatientMission, event: ProgressEvent) -> int:
    day = event.occurred_at.date()
    last: Optional[date] = mission.streak_last_date
    if last is None:
        streak = 1
    elif day <= last:
        # same day repeats and out-of-order events don't count
        return mission.progress
    elif day == last + timedelta(days=1):
        streak = mission.progress + 1
    else:
        streak = 1
    mission.streak_last_date = day
    return streak


def _percentage(mission: PatientMission, event: ProgressEvent) -> int:
    if event.numerator is None or event.denominator is None:
        raise ValidationError("Percentage events need numerator and denominator")
    if event.denominator <= 0 or event.numerator < 0:
        raise ValidationError("Percentage events need numerator >= 0 and denominator > 0")
    return int(math.floor(event.numerator / event.denominator * 100 + 0.5))


def _time_based(mission: PatientMission, event: ProgressEvent) -> int:
    if event.seconds is None or event.seconds < 0:
        raise ValidationError("Time-based events need elapsed seconds >= 0")
    mission.elapsed_seconds = (mission.elapsed_seconds or 0) + event.seconds
    unit = UNIT_SECONDS[TimeUnit(mission.template.time_unit)]
    return mission.elapsed_seconds // unit


RULES = {
    CompletionCriteria.TOTAL_COUNT: _total_count,
    CompletionCriteria.DAYS_STREAK: _days_streak,
    CompletionCriteria.PERCENTAGE: _percentage,
    CompletionCriteria.TIME_BASED: _time_based,
}


def accepts_automatic_events(mission: PatientMission) -> bool:
    template = mission.template
    if template.completion_criteria == CompletionCriteria.MANUAL:
        return False
    return not template.requires_manual_validation


# ----------------------------------------------------------------------
# Completion
# ----------------------------------------------------------------------
def points_for(mission: PatientMission) -> int:
    if mission.custom_points is not None:
        return mission.custom_points
    return mission.template.total_points


def _complete(db: Session, mission: PatientMission, now: datetime) -> None:
    transition(mission, MissionStatus.COMPLETED, now)
    mission.progress = mission.target_value
    mission.points_earned = points_for(mission)
    db.flush()
    ledger.reward_mission(db, mission, mission.points_earned)
    logger.info(
        f"[progress] Mission {mission.id} completed for patient {mission.patient_id} "
        f"(+{mission.points_earned} points)"
    )


def _apply(db: Session, mission: PatientMission, event: ProgressEvent, now: datetime) -> None:
    rule = RULES[mission.template.completion_criteria]
    new_progress = rule(mission, event)
    mission.progress = max(0, min(new_progress, mission.target_value))
    if mission.status == MissionStatus.AVAILABLE:
        transition(mission, MissionStatus.IN_PROGRESS, now)
    if mission.progress >= mission.target_value:
        _complete(db, mission, now)
    else:
        db.flush()


def _with_retries(db: Session, mission: PatientMission, step) -> PatientMission:
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            with db.begin_nested():
                step()
            return mission
        except StaleDataError:
            logger.warning(f"[progress] Mission {mission.id} changed concurrently (attempt {attempt})")
            db.refresh(mission)
    raise BusinessRuleViolation(f"Mission {mission.id} is being updated concurrently; retry later")


def apply_event(db: Session, mission: PatientMission, event: ProgressEvent, now: datetime) -> PatientMission:
    """Apply one automatic domain event to `mission`. Terminal missions are returned untouched."""

    def step():
        if expire_if_due(mission, now):
            db.flush()
            return
        if not mission.is_open or not accepts_automatic_events(mission):
            return
        _apply(db, mission, event, now)

    return _with_retries(db, mission, step)


def complete_manually(db: Session, mission: PatientMission, now: datetime) -> PatientMission:
    """Explicit "complete" action for manual-criteria missions."""
    if mission.status == MissionStatus.COMPLETED:
        return mission
    if mission.template.completion_criteria != CompletionCriteria.MANUAL:
        raise BusinessRuleViolation(
            "Only manual missions can be completed directly; this one completes from its progress events"
        )

    if expire_if_due(mission, now):
        db.flush()
    if not mission.is_open:
        raise BusinessRuleViolation(f"Mission {mission.id} is already {mission.status.value}")

    def step():
        if mission.status == MissionStatus.COMPLETED:
            return
        _complete(db, mission, now)

    return _with_retries(db, mission, step)


def validate(
    db: Session, mission: PatientMission, approved: bool, validated_by: Optional[str], now: datetime
) -> PatientMission:
    """Clinician validation: approve completes the mission, reject fails it."""
    template = mission.template
    if not (template.requires_manual_validation or template.completion_criteria == CompletionCriteria.MANUAL):
        raise BusinessRuleViolation("This mission does not require clinician validation")
    if mission.status == MissionStatus.COMPLETED and approved:
        return mission

    def step():
        if not mission.is_open:
            raise BusinessRuleViolation(f"Mission {mission.id} is already {mission.status.value}")
        mission.validated_by = validated_by
        mission.validated_at = now
        if approved:
            _complete(db, mission, now)
        else:
            transition(mission, MissionStatus.FAILED, now)
            db.flush()
            logger.info(f"[progress] Mission {mission.id} rejected by {validated_by}")

    return _with_retries(db, mission, step)
