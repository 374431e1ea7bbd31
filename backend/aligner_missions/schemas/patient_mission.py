# backend/aligner_missions/schemas/patient_mission.py
from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

from aligner_missions.models.enums import EventKind, MissionStatus, Trigger
from aligner_missions.schemas.mission_template import MissionTemplateOut


class PatientMissionOut(BaseModel):
    id: int
    patient_id: int
    mission_template_id: int
    assignment_id: Optional[int] = None
    status: MissionStatus
    progress: int
    target_value: int
    trigger: Trigger
    trigger_aligner_number: Optional[int] = None
    trigger_days_offset: Optional[int] = None
    auto_activated: bool
    period_key: str
    custom_points: Optional[int] = None
    points_earned: int
    streak_last_date: Optional[date] = None
    elapsed_seconds: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None
    template: MissionTemplateOut

    model_config = ConfigDict(from_attributes=True)


class ActivateRequest(BaseModel):
    patient_id: int
    mission_template_id: int
    trigger: Trigger = Trigger.IMMEDIATE
    trigger_aligner_number: Optional[int] = Field(None, ge=1)
    trigger_days_offset: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    custom_points: Optional[int] = Field(None, ge=0)


class AssignmentOut(BaseModel):
    id: int
    patient_id: int
    mission_template_id: int
    trigger: Trigger
    aligner_number: Optional[int] = None
    days_offset: Optional[int] = None
    aligner_interval: int
    custom_points: Optional[int] = None
    expires_at: Optional[datetime] = None
    source: str
    program_id: Optional[int] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ActivateResponse(BaseModel):
    assignment: AssignmentOut
    mission: Optional[PatientMissionOut] = None
    scheduled: bool

    model_config = ConfigDict(from_attributes=True)


class DomainEventRequest(BaseModel):
    patient_id: int
    kind: EventKind
    occurred_at: Optional[datetime] = None
    amount: int = Field(1, ge=0)
    numerator: Optional[float] = Field(None, ge=0)
    denominator: Optional[float] = Field(None, gt=0)
    seconds: Optional[int] = Field(None, ge=0)
    mission_template_id: Optional[int] = None


class ValidateRequest(BaseModel):
    approved: bool
    validated_by: Optional[str] = Field(None, max_length=64)


class CloneRequest(BaseModel):
    source_patient_id: int
    target_patient_ids: List[int] = Field(..., min_length=1)

    @field_validator("target_patient_ids")
    @classmethod
    def _dedupe(cls, v):
        return list(dict.fromkeys(v))


class CloneTargetOk(BaseModel):
    target_id: int
    created: List[int]
    skipped: List[int]

    model_config = ConfigDict(from_attributes=True)


class CloneTargetFailed(BaseModel):
    target_id: int
    reason: str

    model_config = ConfigDict(from_attributes=True)


class CloneResponse(BaseModel):
    source_id: int
    succeeded: List[CloneTargetOk]
    failed: List[CloneTargetFailed]

    model_config = ConfigDict(from_attributes=True)
