# backend/aligner_missions/services/activator.py
"""
Mission activation: turn a fired trigger into a durable PatientMission.

Activation is idempotent per (patient, template, period_key). Two database
constraints act as the compare-and-set:

  * uq_patient_mission_period  -- one instance per trigger period, any status
  * uq_patient_mission_open    -- one open (available/in_progress) instance
                                  per (patient, template)

The insert runs inside a SAVEPOINT; losing a race surfaces as an
IntegrityError there, which resolves to whichever row won.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from aligner_missions.errors import BusinessRuleViolation, NotFound
from aligner_missions.models.enums import MissionStatus, OPEN_STATUSES, Trigger
from aligner_missions.models.mission_template import MissionTemplate
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.services.lifecycle import transition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerContext:
    trigger: Trigger
    period_key: str
    aligner_number: Optional[int] = None
    days_offset: Optional[int] = None
    assignment_id: Optional[int] = None
    custom_points: Optional[int] = None
    expires_at: Optional[datetime] = None
    # True when the engine fired it, False for an explicit staff action
    automatic: bool = True


def find_by_period(db: Session, patient_id: int, template_id: int, period_key: str) -> Optional[PatientMission]:
    return db.scalar(
        select(PatientMission).where(
            PatientMission.patient_id == patient_id,
            PatientMission.mission_template_id == template_id,
            PatientMission.period_key == period_key,
        )
    )


def find_open(db: Session, patient_id: int, template_id: int) -> Optional[PatientMission]:
    return db.scalar(
        select(PatientMission).where(
            PatientMission.patient_id == patient_id,
            PatientMission.mission_template_id == template_id,
            PatientMission.status.in_(OPEN_STATUSES),
        )
    )


def auto_activation_allowed(template: MissionTemplate, now: datetime) -> bool:
    if not template.auto_activate:
        return False
    today = now.date()
    if template.scheduled_start_date and today < template.scheduled_start_date:
        return False
    if template.scheduled_end_date and today > template.scheduled_end_date:
        return False
    return True


def _expires_at(template: MissionTemplate, ctx: TriggerContext, now: datetime) -> Optional[datetime]:
    if ctx.expires_at is not None:
        return ctx.expires_at
    if template.expires_after_days:
        return now + timedelta(days=template.expires_after_days)
    return None


def try_activate(
    db: Session,
    patient_id: int,
    template: MissionTemplate,
    ctx: TriggerContext,
    now: datetime,
) -> Tuple[Optional[PatientMission], bool]:
    """
    Returns (mission, created). `mission` is None when activation was a no-op
    (auto-activation disabled or outside the scheduled window).
    """
    if template is None or template.is_deleted:
        raise NotFound("Mission template not found")
    if ctx.automatic:
        if ctx.trigger == Trigger.MANUAL:
            raise BusinessRuleViolation("Manual missions can only be activated by staff")
        if not auto_activation_allowed(template, now):
            logger.debug(f"[activator] Template {template.id} not auto-activatable at {now:%Y-%m-%d}")
            return None, False

    existing = find_by_period(db, patient_id, template.id, ctx.period_key)
    if existing is not None:
        return existing, False

    mission = PatientMission(
        patient_id=patient_id,
        mission_template_id=template.id,
        assignment_id=ctx.assignment_id,
        status=MissionStatus.AVAILABLE,
        progress=0,
        target_value=template.target_value,
        trigger=ctx.trigger,
        trigger_aligner_number=ctx.aligner_number,
        trigger_days_offset=ctx.days_offset,
        auto_activated=ctx.automatic,
        period_key=ctx.period_key,
        custom_points=ctx.custom_points,
        points_earned=0,
        elapsed_seconds=0,
        started_at=now,
        expires_at=_expires_at(template, ctx, now),
    )

    try:
        with db.begin_nested():
            # a new period rolls over whatever instance is still open
            previous = find_open(db, patient_id, template.id)
            if previous is not None:
                transition(previous, MissionStatus.EXPIRED, now)
                db.flush()
                logger.info(
                    f"[activator] Mission {previous.id} expired by new period {ctx.period_key!r}"
                )
            db.add(mission)
            db.flush()
    except (IntegrityError, StaleDataError) as e:
        logger.warning(
            f"[activator] Concurrent activation for patient {patient_id} / template {template.id}: {e.__class__.__name__}"
        )
        winner = find_by_period(db, patient_id, template.id, ctx.period_key) or find_open(
            db, patient_id, template.id
        )
        return winner, False

    logger.info(
        f"[activator] Activated template {template.id} for patient {patient_id} "
        f"(mission {mission.id}, period {ctx.period_key!r}, trigger {ctx.trigger.value})"
    )
    return mission, True


def activate(
    db: Session,
    patient_id: int,
    template: MissionTemplate,
    ctx: TriggerContext,
    now: datetime,
) -> Optional[PatientMission]:
    mission, _created = try_activate(db, patient_id, template, ctx, now)
    return mission
