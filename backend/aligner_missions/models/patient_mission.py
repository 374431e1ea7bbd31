# backend/aligner_missions/models/patient_mission.py
from __future__ import annotations

from datetime import date, datetime
from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Boolean,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aligner_missions.db import Base
from aligner_missions.models.enums import MissionStatus, Trigger, OPEN_STATUSES, enum_column

_OPEN_SQL = "status IN ('available', 'in_progress')"


class PatientMission(Base):
    __tablename__ = "patient_missions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    mission_template_id: Mapped[int] = mapped_column(
        ForeignKey("mission_templates.id"), nullable=False
    )
    assignment_id: Mapped[int | None] = mapped_column(
        ForeignKey("mission_assignments.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[MissionStatus] = mapped_column(
        enum_column(MissionStatus, length=20), nullable=False, default=MissionStatus.AVAILABLE
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # copied from the template so later edits don't touch in-flight missions
    target_value: Mapped[int] = mapped_column(Integer, nullable=False)

    trigger: Mapped[Trigger] = mapped_column(enum_column(Trigger), nullable=False)
    trigger_aligner_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trigger_days_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # idempotency key of the trigger period this instance belongs to
    period_key: Mapped[str] = mapped_column(String(64), nullable=False)

    custom_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # criteria bookkeeping
    streak_last_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    elapsed_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    validated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "patient_id", "mission_template_id", "period_key", name="uq_patient_mission_period"
        ),
        # at most one open instance per (patient, template)
        Index(
            "uq_patient_mission_open",
            "patient_id",
            "mission_template_id",
            unique=True,
            sqlite_where=text(_OPEN_SQL),
            postgresql_where=text(_OPEN_SQL),
        ),
        Index("ix_patient_missions_patient_status", "patient_id", "status"),
        CheckConstraint("progress >= 0 AND progress <= target_value", name="chk_progress_range"),
        CheckConstraint("target_value > 0", name="chk_mission_target_positive"),
        CheckConstraint("points_earned >= 0", name="chk_points_earned"),
    )

    template = relationship("MissionTemplate", lazy="joined")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_past_due(self, now: datetime) -> bool:
        return self.is_open and self.expires_at is not None and self.expires_at < now
