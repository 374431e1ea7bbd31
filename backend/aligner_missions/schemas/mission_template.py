# backend/aligner_missions/schemas/mission_template.py
from __future__ import annotations
from datetime import date, datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict

from aligner_missions.models.enums import (
    CompletionCriteria,
    MissionCategory,
    MissionFrequency,
    RepeatSchedule,
    TimeUnit,
)


def _check_days(days):
    if days is None:
        return days
    for d in days:
        if d < 0 or d > 6:
            raise ValueError("active_days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
    return sorted(set(days))


class MissionTemplateBase(BaseModel):
    clinic_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    icon: Optional[str] = None
    color: Optional[str] = None
    category: MissionCategory
    frequency: MissionFrequency
    completion_criteria: CompletionCriteria
    target_value: int = Field(..., gt=0)
    time_unit: TimeUnit = TimeUnit.HOURS
    base_points: int = Field(0, ge=0)
    bonus_points: int = Field(0, ge=0)
    is_active_by_default: bool = True
    requires_manual_validation: bool = False
    auto_activate: bool = True
    available_from: str = "start"
    expires_after_days: Optional[int] = Field(None, ge=1)
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    active_days_of_week: Optional[List[int]] = None
    repeat_schedule: RepeatSchedule = RepeatSchedule.NONE
    aligner_interval: int = Field(1, ge=1)

    @field_validator("active_days_of_week")
    @classmethod
    def _valid_days(cls, v):
        return _check_days(v)


class MissionTemplateCreate(MissionTemplateBase):
    pass


class MissionTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[MissionCategory] = None
    frequency: Optional[MissionFrequency] = None
    completion_criteria: Optional[CompletionCriteria] = None
    target_value: Optional[int] = Field(None, gt=0)
    time_unit: Optional[TimeUnit] = None
    base_points: Optional[int] = Field(None, ge=0)
    bonus_points: Optional[int] = Field(None, ge=0)
    is_active_by_default: Optional[bool] = None
    requires_manual_validation: Optional[bool] = None
    auto_activate: Optional[bool] = None
    available_from: Optional[str] = None
    expires_after_days: Optional[int] = Field(None, ge=1)
    scheduled_start_date: Optional[date] = None
    scheduled_end_date: Optional[date] = None
    active_days_of_week: Optional[List[int]] = None
    repeat_schedule: Optional[RepeatSchedule] = None
    aligner_interval: Optional[int] = Field(None, ge=1)

    @field_validator("active_days_of_week")
    @classmethod
    def _valid_days(cls, v):
        return _check_days(v)


class MissionTemplateOut(MissionTemplateBase):
    id: int
    total_points: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
