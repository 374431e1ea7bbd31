# backend/aligner_missions/schemas/patient.py
from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


class PatientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    clinic_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class AlignerOut(BaseModel):
    aligner_number: int
    start_date: date

    model_config = ConfigDict(from_attributes=True)


class TreatmentIn(BaseModel):
    start_date: Optional[date] = None
    total_aligners: Optional[int] = Field(None, ge=1)
    current_aligner_number: Optional[int] = Field(None, ge=1)


class TreatmentOut(BaseModel):
    start_date: Optional[date] = None
    total_aligners: Optional[int] = None
    current_aligner_number: int
    updated_at: datetime
    aligners: List[AlignerOut] = []

    model_config = ConfigDict(from_attributes=True)


class StartAlignerIn(BaseModel):
    aligner_number: Optional[int] = Field(None, ge=1)
    start_date: Optional[date] = None


class PatientOut(BaseModel):
    id: int
    name: str
    clinic_id: Optional[int] = None
    created_at: datetime
    treatment: Optional[TreatmentOut] = None

    model_config = ConfigDict(from_attributes=True)
