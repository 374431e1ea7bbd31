# backend/aligner_missions/models/mission_program.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aligner_missions.db import Base
from aligner_missions.models.enums import Trigger, enum_column


class MissionProgram(Base):
    __tablename__ = "mission_programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    clinic_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    templates = relationship(
        "MissionProgramTemplate",
        back_populates="program",
        cascade="all, delete-orphan",
        order_by="MissionProgramTemplate.id",
        lazy="selectin",
    )


class MissionProgramTemplate(Base):
    """One (template x aligner) cell, or a free-form trigger entry, of a program."""

    __tablename__ = "mission_program_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    program_id: Mapped[int] = mapped_column(
        ForeignKey("mission_programs.id", ondelete="CASCADE"), nullable=False
    )
    mission_template_id: Mapped[int] = mapped_column(
        ForeignKey("mission_templates.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    aligner_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    trigger: Mapped[Trigger] = mapped_column(
        enum_column(Trigger), nullable=False, default=Trigger.ON_ALIGNER_N_START
    )
    trigger_aligner_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trigger_days_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __table_args__ = (
        Index("ix_program_templates_cell", "program_id", "mission_template_id", "trigger_aligner_number"),
    )

    program = relationship("MissionProgram", back_populates="templates")
