# backend/aligner_missions/services/engine.py
"""
Entry points that tie the evaluator, activator and tracker together.

There is no background scheduler: `sync_patient` runs on every read of a
patient's missions, on every treatment write and before domain events are
applied. It expires overdue missions, re-evaluates every active assignment
against the current treatment state and activates whatever fired.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aligner_missions.errors import Conflict, NotFound, ValidationError
from aligner_missions.models.enums import EventKind, MissionCategory, OPEN_STATUSES, Trigger
from aligner_missions.models.mission_assignment import MissionAssignment
from aligner_missions.models.mission_template import MissionTemplate
from aligner_missions.models.patient import Patient
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.models.treatment import Treatment
from aligner_missions.services import activator, progress, triggers
from aligner_missions.services.catalog import get_template
from aligner_missions.services.lifecycle import expire_overdue

logger = logging.getLogger(__name__)

EVENT_CATEGORIES: Dict[EventKind, set] = {
    EventKind.USAGE: {MissionCategory.USAGE},
    EventKind.HYGIENE: {MissionCategory.HYGIENE},
    EventKind.PHOTO: {MissionCategory.TRACKING},
    EventKind.CHECK_IN: {
        MissionCategory.APPOINTMENTS,
        MissionCategory.EDUCATION,
        MissionCategory.CHALLENGES,
        MissionCategory.MILESTONES,
    },
    EventKind.ALIGNER_CHANGE: {MissionCategory.ALIGNER_CHANGE},
}

ALIGNER_TRIGGERS = (Trigger.ON_ALIGNER_N_START, Trigger.DAYS_AFTER_ALIGNER_N)
OFFSET_TRIGGERS = (
    Trigger.DAYS_AFTER_ALIGNER_N,
    Trigger.DAYS_AFTER_TREATMENT_START,
    Trigger.WEEKS_AFTER_TREATMENT_START,
)


def get_patient(db: Session, patient_id: int) -> Patient:
    p = db.get(Patient, patient_id)
    if p is None:
        raise NotFound(f"Patient {patient_id} not found")
    return p


def treatment_state(db: Session, patient_id: int, now: datetime) -> triggers.TreatmentState:
    treatment = db.scalar(select(Treatment).where(Treatment.patient_id == patient_id))
    return triggers.TreatmentState.from_treatment(treatment, now)


def active_assignments(db: Session, patient_id: int) -> List[MissionAssignment]:
    return list(
        db.scalars(
            select(MissionAssignment)
            .join(MissionTemplate, MissionTemplate.id == MissionAssignment.mission_template_id)
            .where(
                MissionAssignment.patient_id == patient_id,
                MissionAssignment.is_active.is_(True),
                MissionTemplate.deleted_at.is_(None),
            )
            .order_by(MissionAssignment.id)
        )
        .unique()
        .all()
    )


def context_for(assignment: MissionAssignment, period_key: str, *, automatic: bool = True,
                aligner_number: Optional[int] = None) -> activator.TriggerContext:
    return activator.TriggerContext(
        trigger=Trigger(assignment.trigger),
        period_key=period_key,
        aligner_number=aligner_number or assignment.aligner_number,
        days_offset=assignment.days_offset,
        assignment_id=assignment.id,
        custom_points=assignment.custom_points,
        expires_at=assignment.expires_at,
        automatic=automatic,
    )


# ----------------------------------------------------------------------
# Sync
# ----------------------------------------------------------------------
def sync_patient(db: Session, patient_id: int, now: datetime) -> List[PatientMission]:
    """Lazy expiry + trigger evaluation for one patient. Returns newly created missions."""
    expire_overdue(db, patient_id, now)
    state = treatment_state(db, patient_id, now)
    if not state.has_treatment:
        return []

    # only the latest firing per template may activate; older ones are superseded
    latest: Dict[int, tuple] = {}
    for a in active_assignments(db, patient_id):
        for f in triggers.firings(a, a.template, state):
            current = latest.get(a.mission_template_id)
            if current is None or f.sort_key >= current[1].sort_key:
                latest[a.mission_template_id] = (a, f)

    created = []
    for template_id, (a, f) in sorted(latest.items()):
        key = triggers.period_key(a.template, f, state)
        if activator.find_by_period(db, patient_id, template_id, key) is not None:
            continue
        mission, was_created = activator.try_activate(
            db, patient_id, a.template, context_for(a, key, aligner_number=f.aligner_number), now
        )
        if was_created:
            created.append(mission)
    if created:
        logger.info(f"[engine] Patient {patient_id}: {len(created)} mission(s) activated")
    return created


def patient_missions(db: Session, patient_id: int, now: datetime, *, include_closed: bool = False) -> List[PatientMission]:
    get_patient(db, patient_id)
    sync_patient(db, patient_id, now)
    q = select(PatientMission).where(PatientMission.patient_id == patient_id)
    if not include_closed:
        q = q.where(PatientMission.status.in_(OPEN_STATUSES))
    return list(db.scalars(q.order_by(PatientMission.created_at, PatientMission.id)).unique().all())


def get_mission(db: Session, mission_id: int, now: datetime) -> PatientMission:
    m = db.get(PatientMission, mission_id)
    if m is None:
        raise NotFound("Mission not found")
    expire_overdue(db, m.patient_id, now)
    return m


# ----------------------------------------------------------------------
# Assignments / explicit activation
# ----------------------------------------------------------------------
def validate_trigger_config(trigger: Trigger, aligner_number: Optional[int], days_offset: Optional[int]) -> None:
    if trigger in ALIGNER_TRIGGERS and (aligner_number is None or aligner_number < 1):
        raise ValidationError(f"{trigger.value} needs trigger_aligner_number >= 1")
    if trigger == Trigger.ON_ALIGNER_CHANGE and aligner_number is not None and aligner_number < 1:
        raise ValidationError("trigger_aligner_number must be >= 1")
    if trigger in OFFSET_TRIGGERS and days_offset is not None and days_offset < 0:
        raise ValidationError("trigger_days_offset must be >= 0")


def find_assignment(db: Session, patient_id: int, template_id: int, trigger: Trigger,
                    aligner_number: Optional[int], days_offset: Optional[int]) -> Optional[MissionAssignment]:
    return db.scalar(
        select(MissionAssignment).where(
            MissionAssignment.patient_id == patient_id,
            MissionAssignment.mission_template_id == template_id,
            MissionAssignment.trigger == trigger,
            MissionAssignment.trigger_aligner_number == (aligner_number or 0),
            MissionAssignment.trigger_days_offset == (days_offset or 0),
        )
    )


def ensure_assignment(
    db: Session,
    patient_id: int,
    template: MissionTemplate,
    trigger: Trigger,
    *,
    aligner_number: Optional[int] = None,
    days_offset: Optional[int] = None,
    aligner_interval: Optional[int] = None,
    custom_points: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    source: str = "direct",
    program_id: Optional[int] = None,
) -> tuple[MissionAssignment, bool]:
    """Get-or-create the trigger configuration. Returns (assignment, created)."""
    validate_trigger_config(trigger, aligner_number, days_offset)
    existing = find_assignment(db, patient_id, template.id, trigger, aligner_number, days_offset)
    if existing is not None:
        if not existing.is_active:
            existing.is_active = True
            db.flush()
            return existing, True
        return existing, False

    a = MissionAssignment(
        patient_id=patient_id,
        mission_template_id=template.id,
        trigger=trigger,
        trigger_aligner_number=aligner_number or 0,
        trigger_days_offset=days_offset or 0,
        aligner_interval=aligner_interval or template.aligner_interval or 1,
        custom_points=custom_points,
        expires_at=expires_at,
        source=source,
        program_id=program_id,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(a)
            db.flush()
    except IntegrityError:
        winner = find_assignment(db, patient_id, template.id, trigger, aligner_number, days_offset)
        return winner, False
    return a, True


@dataclass
class ActivationResult:
    assignment: MissionAssignment
    mission: Optional[PatientMission]

    @property
    def scheduled(self) -> bool:
        return self.mission is None


def assign_and_activate(
    db: Session,
    patient_id: int,
    template_id: int,
    trigger: Trigger,
    now: datetime,
    *,
    aligner_number: Optional[int] = None,
    days_offset: Optional[int] = None,
    expires_at: Optional[datetime] = None,
    custom_points: Optional[int] = None,
) -> ActivationResult:
    """
    Staff activation. `immediate` and `manual` triggers activate right away;
    any other trigger is recorded and activates now only if it already fired,
    otherwise it waits for the treatment to get there.
    """
    get_patient(db, patient_id)
    template = get_template(db, template_id)
    if custom_points is not None and custom_points < 0:
        raise ValidationError("custom_points must be >= 0")
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future")

    if activator.find_open(db, patient_id, template.id) is not None:
        raise Conflict("Mission already assigned to this patient")
    assignment, created = ensure_assignment(
        db,
        patient_id,
        template,
        trigger,
        aligner_number=aligner_number,
        days_offset=days_offset,
        custom_points=custom_points,
        expires_at=expires_at,
    )
    if not created:
        raise Conflict("Mission already assigned to this patient with the same trigger")

    if trigger == Trigger.MANUAL:
        key = f"manual:{assignment.id}"
        mission = activator.activate(db, patient_id, template, context_for(assignment, key, automatic=False), now)
        return ActivationResult(assignment, mission)

    state = treatment_state(db, patient_id, now)
    fired = triggers.firings(assignment, template, state)
    if not fired:
        logger.info(f"[engine] Assignment {assignment.id} scheduled ({trigger.value}); nothing fired yet")
        return ActivationResult(assignment, None)
    f = fired[-1]
    key = triggers.period_key(template, f, state)
    ctx = context_for(
        assignment, key, automatic=trigger != Trigger.IMMEDIATE, aligner_number=f.aligner_number
    )
    mission = activator.activate(db, patient_id, template, ctx, now)
    return ActivationResult(assignment, mission)


# ----------------------------------------------------------------------
# Domain events
# ----------------------------------------------------------------------
def apply_domain_event(
    db: Session,
    patient_id: int,
    event: progress.ProgressEvent,
    now: datetime,
    *,
    template_id: Optional[int] = None,
) -> List[PatientMission]:
    """Route one domain event to the patient's matching open missions."""
    get_patient(db, patient_id)
    sync_patient(db, patient_id, now)

    categories = EVENT_CATEGORIES[event.kind]
    q = (
        select(PatientMission)
        .join(MissionTemplate, MissionTemplate.id == PatientMission.mission_template_id)
        .where(
            PatientMission.patient_id == patient_id,
            PatientMission.status.in_(OPEN_STATUSES),
            MissionTemplate.category.in_(categories),
        )
        .order_by(PatientMission.id)
    )
    if template_id is not None:
        q = q.where(PatientMission.mission_template_id == template_id)

    touched = []
    for m in db.scalars(q).unique().all():
        if not progress.accepts_automatic_events(m):
            continue
        touched.append(progress.apply_event(db, m, event, now))
    logger.info(f"[engine] Event {event.kind.value} for patient {patient_id} touched {len(touched)} mission(s)")
    return touched
