# backend/aligner_missions/services/ledger.py
"""
Points ledger: the place mission rewards are emitted to.

Coins mirror the reward 1:1, XP is half of it and the level follows XP
(every 100 XP is one level). Each mission reward is one PointTransaction keyed
by the mission id; the unique constraint on that column makes a second
emission for the same mission fail instead of double-paying.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from aligner_missions.errors import ValidationError
from aligner_missions.models.points import PatientPoints, PointTransaction

logger = logging.getLogger(__name__)


def level_for_xp(xp: int) -> int:
    return (xp or 0) // 100 + 1


def get_or_create_points(db: Session, patient_id: int) -> PatientPoints:
    row = db.scalar(select(PatientPoints).where(PatientPoints.patient_id == patient_id))
    if row is not None:
        return row
    row = PatientPoints(patient_id=patient_id, coins=0, xp=0, level=1)
    db.add(row)
    db.flush()
    return row


def add_points(
    db: Session,
    patient_id: int,
    coins: int = 0,
    xp: int = 0,
    *,
    source: str = "manual",
    patient_mission_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> PointTransaction:
    """Apply a coins/XP delta and append the matching transaction. Caller commits."""
    points = get_or_create_points(db, patient_id)
    next_coins = (points.coins or 0) + coins
    next_xp = (points.xp or 0) + xp
    if next_coins < 0:
        raise ValidationError("Coin balance cannot become negative")
    if next_xp < 0:
        raise ValidationError("XP cannot become negative")

    points.coins = next_coins
    points.xp = next_xp
    points.level = level_for_xp(next_xp)

    tx = PointTransaction(
        patient_id=patient_id,
        kind="earn" if source == "mission" else "adjust",
        source=source,
        patient_mission_id=patient_mission_id,
        amount_coins=coins,
        amount_xp=xp,
        balance_after_coins=next_coins,
        details=details or {},
    )
    db.add(tx)
    db.flush()
    return tx


def add_coins(db: Session, patient_id: int, coins: int, **kw) -> PointTransaction:
    return add_points(db, patient_id, coins=coins, **kw)


def add_xp(db: Session, patient_id: int, xp: int, **kw) -> PointTransaction:
    return add_points(db, patient_id, xp=xp, **kw)


def reward_mission(db: Session, mission, points: int) -> Optional[PointTransaction]:
    """Emit the completion reward for `mission` unless it was already emitted."""
    already = db.scalar(
        select(PointTransaction.id).where(PointTransaction.patient_mission_id == mission.id)
    )
    if already is not None:
        logger.warning(f"[ledger] Mission {mission.id} already rewarded; skipping")
        return None

    tx = add_points(
        db,
        mission.patient_id,
        coins=points,
        xp=points // 2,
        source="mission",
        patient_mission_id=mission.id,
        details={"mission_template_id": mission.mission_template_id},
    )
    logger.info(f"[ledger] Patient {mission.patient_id} +{points} coins for mission {mission.id}")
    return tx
