# backend/aligner_missions/routers/points.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from aligner_missions.db import get_db
from aligner_missions.models.points import PointTransaction
from aligner_missions.schemas.points import PatientPointsOut, PointTransactionOut
from aligner_missions.services import engine, ledger

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/patient/{patient_id}", response_model=PatientPointsOut)
def patient_points(patient_id: int, db: Session = Depends(get_db)):
    engine.get_patient(db, patient_id)
    row = ledger.get_or_create_points(db, patient_id)
    db.commit()
    return row


@router.get("/patient/{patient_id}/transactions", response_model=List[PointTransactionOut])
def transactions(
    patient_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    engine.get_patient(db, patient_id)
    return db.scalars(
        select(PointTransaction)
        .where(PointTransaction.patient_id == patient_id)
        .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
        .limit(limit)
    ).all()
