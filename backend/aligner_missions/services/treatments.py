# backend/aligner_missions/services/treatments.py
"""Treatment writes. Each one is a trigger-evaluation point for the patient."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from aligner_missions.errors import BusinessRuleViolation, NotFound, ValidationError
from aligner_missions.models.enums import EventKind
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.models.treatment import Aligner, Treatment
from aligner_missions.services import engine
from aligner_missions.services.progress import ProgressEvent

logger = logging.getLogger(__name__)


def get_treatment(db: Session, patient_id: int) -> Treatment:
    engine.get_patient(db, patient_id)
    t = db.scalar(select(Treatment).where(Treatment.patient_id == patient_id))
    if t is None:
        raise NotFound(f"Patient {patient_id} has no treatment")
    return t


def upsert_treatment(
    db: Session,
    patient_id: int,
    now: datetime,
    *,
    start_date: Optional[date] = None,
    total_aligners: Optional[int] = None,
    current_aligner_number: Optional[int] = None,
) -> Treatment:
    engine.get_patient(db, patient_id)
    if total_aligners is not None and total_aligners < 1:
        raise ValidationError("total_aligners must be >= 1")
    if current_aligner_number is not None and current_aligner_number < 1:
        raise ValidationError("current_aligner_number must be >= 1")

    t = db.scalar(select(Treatment).where(Treatment.patient_id == patient_id))
    if t is None:
        t = Treatment(patient_id=patient_id, current_aligner_number=1)
        db.add(t)
    moved = current_aligner_number is not None and current_aligner_number != t.current_aligner_number
    if start_date is not None:
        t.start_date = start_date
    if total_aligners is not None:
        t.total_aligners = total_aligners
    if current_aligner_number is not None:
        t.current_aligner_number = current_aligner_number
    t.updated_at = now
    started = None
    if moved and t.current_aligner_number > 1:
        # a moved aligner starts today, never before the treatment does
        started = max(now.date(), t.start_date) if t.start_date else now.date()
    _record_current_aligner(db, t, started)
    db.flush()

    engine.sync_patient(db, patient_id, now)
    return t


def _record_current_aligner(db: Session, t: Treatment, started: Optional[date] = None) -> None:
    if t.start_date is None and started is None:
        return
    numbers = {a.aligner_number for a in (t.aligners or [])}
    if t.current_aligner_number in numbers:
        return
    day = started or (t.start_date if t.current_aligner_number == 1 else None)
    if day is None:
        return
    t.aligners.append(Aligner(aligner_number=t.current_aligner_number, start_date=day))


def start_aligner(
    db: Session,
    patient_id: int,
    now: datetime,
    *,
    aligner_number: Optional[int] = None,
    start_date: Optional[date] = None,
) -> List[PatientMission]:
    """
    Move the patient to a later aligner (the next one by default; skipping is
    allowed). Re-runs triggers, then emits an aligner_change domain event.
    Returns the missions the event touched.
    """
    t = get_treatment(db, patient_id)
    number = aligner_number or (t.current_aligner_number + 1)
    if number <= t.current_aligner_number:
        raise BusinessRuleViolation(
            f"Aligner {number} is not after the current aligner {t.current_aligner_number}"
        )
    if t.total_aligners and number > t.total_aligners:
        raise BusinessRuleViolation(f"Treatment only has {t.total_aligners} aligners")

    day = start_date or now.date()
    if t.start_date is None:
        t.start_date = day
    t.current_aligner_number = number
    t.updated_at = now
    _record_current_aligner(db, t, day)
    db.flush()
    logger.info(f"[treatments] Patient {patient_id} started aligner {number} on {day}")

    event = ProgressEvent(kind=EventKind.ALIGNER_CHANGE, occurred_at=now, amount=1)
    return engine.apply_domain_event(db, patient_id, event, now)
