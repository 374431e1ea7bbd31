# backend/aligner_missions/models/mission_template.py
from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from aligner_missions.db import Base
from aligner_missions.models.enums import (
    CompletionCriteria,
    MissionCategory,
    MissionFrequency,
    RepeatSchedule,
    TimeUnit,
    enum_column,
)


class MissionTemplate(Base):
    __tablename__ = "mission_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # null -> global (platform) template
    clinic_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    color: Mapped[str | None] = mapped_column(String(7), nullable=True)

    category: Mapped[MissionCategory] = mapped_column(enum_column(MissionCategory), nullable=False)
    frequency: Mapped[MissionFrequency] = mapped_column(enum_column(MissionFrequency), nullable=False)
    completion_criteria: Mapped[CompletionCriteria] = mapped_column(
        enum_column(CompletionCriteria), nullable=False
    )
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)
    time_unit: Mapped[TimeUnit] = mapped_column(
        enum_column(TimeUnit), nullable=False, default=TimeUnit.HOURS
    )

    base_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bonus_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active_by_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_manual_validation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_activate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # "start" | "aligner_N" | "week_N" | "month_N"
    available_from: Mapped[str] = mapped_column(String(32), nullable=False, default="start")
    expires_after_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    scheduled_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    scheduled_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # 0=Sunday .. 6=Saturday; null -> every day
    active_days_of_week: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    repeat_schedule: Mapped[RepeatSchedule] = mapped_column(
        enum_column(RepeatSchedule), nullable=False, default=RepeatSchedule.NONE
    )
    aligner_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )
    # soft delete; referenced templates are never removed
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("target_value > 0", name="chk_template_target_positive"),
        CheckConstraint("base_points >= 0 AND bonus_points >= 0", name="chk_template_points"),
        CheckConstraint("aligner_interval >= 1", name="chk_template_aligner_interval"),
    )

    @property
    def total_points(self) -> int:
        return (self.base_points or 0) + (self.bonus_points or 0)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
