# backend/aligner_missions/schemas/mission_program.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from aligner_missions.models.enums import Trigger
from aligner_missions.schemas.patient_mission import PatientMissionOut


class ProgramEntryIn(BaseModel):
    mission_template_id: int
    is_active: bool = True
    aligner_interval: int = Field(1, ge=1)
    trigger: Trigger = Trigger.ON_ALIGNER_N_START
    trigger_aligner_number: Optional[int] = None
    trigger_days_offset: Optional[int] = Field(None, ge=0)
    custom_points: Optional[int] = Field(None, ge=0)


class ProgramEntryOut(ProgramEntryIn):
    id: int
    program_id: int

    model_config = ConfigDict(from_attributes=True)


class CellToggle(BaseModel):
    mission_template_id: int
    # range is checked by the service so the error reads as a business rule
    aligner_number: int
    active: bool


class MissionProgramCreate(BaseModel):
    clinic_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: bool = False
    created_by: Optional[str] = None
    templates: List[ProgramEntryIn] = []


class MissionProgramUpdate(BaseModel):
    clinic_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    is_default: Optional[bool] = None
    # full replacement of the entry list when given
    templates: Optional[List[ProgramEntryIn]] = None
    cells: Optional[List[CellToggle]] = None


class CellsUpdate(BaseModel):
    cells: List[CellToggle]


class MissionProgramOut(BaseModel):
    id: int
    clinic_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    is_default: bool
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    templates: List[ProgramEntryOut] = []

    model_config = ConfigDict(from_attributes=True)


class GridRow(BaseModel):
    mission_template_id: int
    aligners: List[int]


class ProgramGridOut(BaseModel):
    program_id: int
    rows: List[GridRow]


class ApplyRequest(BaseModel):
    patient_id: int
    total_aligners: Optional[int] = Field(None, ge=1)


class ApplyItemOut(BaseModel):
    mission_template_id: int
    aligner_number: Optional[int] = None
    status: str
    assignment_id: Optional[int] = None
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ApplyResponse(BaseModel):
    program_id: int
    patient_id: int
    created: int
    items: List[ApplyItemOut]
    activated: List[PatientMissionOut]

    model_config = ConfigDict(from_attributes=True)
