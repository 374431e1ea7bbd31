# backend/aligner_missions/routers/patients.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from aligner_missions import timeutil
from aligner_missions.db import get_db
from aligner_missions.models.patient import Patient
from aligner_missions.schemas.patient import (
    PatientCreate,
    PatientOut,
    StartAlignerIn,
    TreatmentIn,
    TreatmentOut,
)
from aligner_missions.schemas.patient_mission import PatientMissionOut
from aligner_missions.services import engine, treatments

router = APIRouter(prefix="/patients", tags=["patients"])


@router.post("", response_model=PatientOut, status_code=201)
def create_patient(payload: PatientCreate, db: Session = Depends(get_db)):
    p = Patient(name=payload.name, clinic_id=payload.clinic_id)
    db.add(p)
    db.commit()
    db.refresh(p)
    return p


@router.get("/{patient_id}", response_model=PatientOut)
def get_patient(patient_id: int, db: Session = Depends(get_db)):
    return engine.get_patient(db, patient_id)


@router.put("/{patient_id}/treatment", response_model=TreatmentOut)
def upsert_treatment(patient_id: int, payload: TreatmentIn, db: Session = Depends(get_db)):
    """Create or update the treatment mirror. Re-runs trigger evaluation."""
    t = treatments.upsert_treatment(
        db,
        patient_id,
        timeutil.utcnow(),
        start_date=payload.start_date,
        total_aligners=payload.total_aligners,
        current_aligner_number=payload.current_aligner_number,
    )
    db.commit()
    return t


@router.post("/{patient_id}/treatment/aligners", response_model=List[PatientMissionOut])
def start_aligner(patient_id: int, payload: StartAlignerIn, db: Session = Depends(get_db)):
    """Start the next (or a given later) aligner; returns the missions the change touched."""
    touched = treatments.start_aligner(
        db,
        patient_id,
        timeutil.utcnow(),
        aligner_number=payload.aligner_number,
        start_date=payload.start_date,
    )
    db.commit()
    return touched
