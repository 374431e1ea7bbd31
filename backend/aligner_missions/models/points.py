# backend/aligner_missions/models/points.py
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Index
from aligner_missions.db import Base


class PatientPoints(Base):
    __tablename__ = "patient_points"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, unique=True)
    coins = Column(Integer, nullable=False, default=0)
    xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(20), nullable=False)  # 'earn' | 'adjust'
    source = Column(String(30), nullable=False)  # 'mission' | 'manual'
    # set for source='mission'; unique so a mission can never be rewarded twice
    patient_mission_id = Column(
        Integer, ForeignKey("patient_missions.id", ondelete="SET NULL"), nullable=True, unique=True
    )
    amount_coins = Column(Integer, nullable=False)
    amount_xp = Column(Integer, nullable=False, default=0)
    balance_after_coins = Column(Integer, nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.now, nullable=False)


Index("ix_point_transactions_patient_created", PointTransaction.patient_id, PointTransaction.created_at)
