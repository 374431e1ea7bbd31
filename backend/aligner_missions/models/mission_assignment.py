# backend/aligner_missions/models/mission_assignment.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aligner_missions.db import Base
from aligner_missions.models.enums import Trigger, enum_column


class MissionAssignment(Base):
    """
    Patient-scoped trigger configuration: "give this patient template X when
    trigger Y fires". Direct activation, program apply and cloning all land
    here; the activator turns a fired assignment into a PatientMission.
    """

    __tablename__ = "mission_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    mission_template_id: Mapped[int] = mapped_column(
        ForeignKey("mission_templates.id"), nullable=False
    )
    trigger: Mapped[Trigger] = mapped_column(enum_column(Trigger), nullable=False)
    # 0 stands for "not set" so the uniqueness constraint below stays meaningful
    trigger_aligner_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trigger_days_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    aligner_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    custom_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # "direct" | "program" | "clone"
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="direct")
    program_id: Mapped[int | None] = mapped_column(
        ForeignKey("mission_programs.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "patient_id",
            "mission_template_id",
            "trigger",
            "trigger_aligner_number",
            "trigger_days_offset",
            name="uq_assignment_trigger_config",
        ),
        Index("ix_mission_assignments_patient", "patient_id", "is_active"),
    )

    template = relationship("MissionTemplate", lazy="joined")

    @property
    def aligner_number(self) -> int | None:
        return self.trigger_aligner_number or None

    @property
    def days_offset(self) -> int | None:
        return self.trigger_days_offset or None
