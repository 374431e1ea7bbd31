# backend/aligner_missions/models/treatment.py
from __future__ import annotations

from datetime import date, datetime, timezone
from sqlalchemy import ForeignKey, Date, DateTime, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from aligner_missions.db import Base


class Treatment(Base):
    """Local mirror of the patient's aligner treatment (start date, current aligner)."""

    __tablename__ = "treatments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    # null until the orthodontist actually starts the treatment
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_aligners: Mapped[int | None] = mapped_column(Integer, nullable=True)
    current_aligner_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
        nullable=False,
    )

    patient = relationship("Patient", back_populates="treatment")
    aligners = relationship(
        "Aligner",
        back_populates="treatment",
        cascade="all, delete-orphan",
        order_by="Aligner.aligner_number",
        lazy="selectin",
    )


class Aligner(Base):
    __tablename__ = "aligners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    treatment_id: Mapped[int] = mapped_column(
        ForeignKey("treatments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    aligner_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("treatment_id", "aligner_number", name="uq_aligner_number_per_treatment"),
    )

    treatment = relationship("Treatment", back_populates="aligners")
