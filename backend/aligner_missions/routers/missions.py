# backend/aligner_missions/routers/missions.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from aligner_missions import timeutil
from aligner_missions.db import get_db
from aligner_missions.models.enums import MissionStatus
from aligner_missions.schemas.patient_mission import (
    ActivateRequest,
    ActivateResponse,
    CloneRequest,
    CloneResponse,
    DomainEventRequest,
    PatientMissionOut,
    ValidateRequest,
)
from aligner_missions.services import cloning, engine, lifecycle, progress

router = APIRouter(prefix="/missions", tags=["missions"])


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------
@router.get("/patient/{patient_id}", response_model=List[PatientMissionOut])
def patient_missions(
    patient_id: int,
    include_closed: bool = Query(False, description="Also return completed/failed/expired"),
    db: Session = Depends(get_db),
):
    """Open missions of the patient. Reading runs lazy expiry and trigger evaluation."""
    rows = engine.patient_missions(db, patient_id, timeutil.utcnow(), include_closed=include_closed)
    db.commit()
    return rows


@router.get("/{mission_id}", response_model=PatientMissionOut)
def get_mission(mission_id: int, db: Session = Depends(get_db)):
    m = engine.get_mission(db, mission_id, timeutil.utcnow())
    db.commit()
    return m


# ----------------------------------------------------------------------
# Activation / cloning
# ----------------------------------------------------------------------
@router.post("/activate", response_model=ActivateResponse, status_code=201)
def activate(payload: ActivateRequest, db: Session = Depends(get_db)):
    now = timeutil.utcnow()
    result = engine.assign_and_activate(
        db,
        payload.patient_id,
        payload.mission_template_id,
        payload.trigger,
        now,
        aligner_number=payload.trigger_aligner_number,
        days_offset=payload.trigger_days_offset,
        expires_at=timeutil.naive(payload.expires_at) if payload.expires_at else None,
        custom_points=payload.custom_points,
    )
    db.commit()
    return ActivateResponse.model_validate(result)


@router.post("/clone", response_model=CloneResponse)
def clone(payload: CloneRequest, db: Session = Depends(get_db)):
    result = cloning.clone(db, payload.source_patient_id, payload.target_patient_ids, timeutil.utcnow())
    db.commit()
    return CloneResponse.model_validate(result)


# ----------------------------------------------------------------------
# Progress
# ----------------------------------------------------------------------
@router.post("/events", response_model=List[PatientMissionOut])
def domain_event(payload: DomainEventRequest, db: Session = Depends(get_db)):
    """Route a usage/hygiene/photo/check-in/aligner-change event to matching missions."""
    now = timeutil.utcnow()
    event = progress.ProgressEvent(
        kind=payload.kind,
        occurred_at=timeutil.naive(payload.occurred_at) if payload.occurred_at else now,
        amount=payload.amount,
        numerator=payload.numerator,
        denominator=payload.denominator,
        seconds=payload.seconds,
    )
    touched = engine.apply_domain_event(
        db, payload.patient_id, event, now, template_id=payload.mission_template_id
    )
    db.commit()
    return touched


@router.post("/{mission_id}/complete", response_model=PatientMissionOut)
def complete(mission_id: int, db: Session = Depends(get_db)):
    """Manual completion (completion criteria 'manual')."""
    now = timeutil.utcnow()
    m = engine.get_mission(db, mission_id, now)
    progress.complete_manually(db, m, now)
    db.commit()
    return m


@router.post("/{mission_id}/validate", response_model=PatientMissionOut)
def validate(mission_id: int, payload: ValidateRequest, db: Session = Depends(get_db)):
    now = timeutil.utcnow()
    m = engine.get_mission(db, mission_id, now)
    progress.validate(db, m, payload.approved, payload.validated_by, now)
    db.commit()
    return m


@router.post("/{mission_id}/fail", response_model=PatientMissionOut)
def fail(mission_id: int, db: Session = Depends(get_db)):
    now = timeutil.utcnow()
    m = engine.get_mission(db, mission_id, now)
    lifecycle.transition(m, MissionStatus.FAILED, now)
    db.commit()
    return m


@router.post("/{mission_id}/expire", response_model=PatientMissionOut)
def expire(mission_id: int, db: Session = Depends(get_db)):
    now = timeutil.utcnow()
    m = engine.get_mission(db, mission_id, now)
    lifecycle.transition(m, MissionStatus.EXPIRED, now)
    db.commit()
    return m


@router.post("/{mission_id}/reset", response_model=PatientMissionOut)
def reset(mission_id: int, db: Session = Depends(get_db)):
    now = timeutil.utcnow()
    m = engine.get_mission(db, mission_id, now)
    lifecycle.reset(m, now)
    db.commit()
    return m
