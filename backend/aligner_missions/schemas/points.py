# backend/aligner_missions/schemas/points.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel
from pydantic.config import ConfigDict


class PatientPointsOut(BaseModel):
    patient_id: int
    coins: int
    xp: int
    level: int

    model_config = ConfigDict(from_attributes=True)


class PointTransactionOut(BaseModel):
    id: int
    kind: str
    source: str
    patient_mission_id: Optional[int] = None
    amount_coins: int
    amount_xp: int
    balance_after_coins: int
    details: dict
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
