# backend/aligner_missions/services/catalog.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from aligner_missions.errors import NotFound, ValidationError
from aligner_missions.models.mission_template import MissionTemplate
from aligner_missions.services.triggers import parse_available_from

logger = logging.getLogger(__name__)


def validate_template(t: MissionTemplate) -> None:
    if not (t.name or "").strip():
        raise ValidationError("name is required")
    if t.target_value is None or t.target_value <= 0:
        raise ValidationError("target_value must be > 0")
    if (t.base_points or 0) < 0 or (t.bonus_points or 0) < 0:
        raise ValidationError("base_points and bonus_points must be >= 0")
    if (t.aligner_interval or 0) < 1:
        raise ValidationError("aligner_interval must be >= 1")
    if t.expires_after_days is not None and t.expires_after_days < 1:
        raise ValidationError("expires_after_days must be >= 1")
    try:
        parse_available_from(t.available_from)
    except ValueError as e:
        raise ValidationError(str(e))
    if t.active_days_of_week is not None:
        days = list(t.active_days_of_week)
        if any(not isinstance(d, int) or d < 0 or d > 6 for d in days):
            raise ValidationError("active_days_of_week values must be between 0 (Sunday) and 6 (Saturday)")
        t.active_days_of_week = sorted(set(days)) or None
    if t.scheduled_start_date and t.scheduled_end_date and t.scheduled_end_date < t.scheduled_start_date:
        raise ValidationError("scheduled_end_date must be on/after scheduled_start_date")


def get_template(db: Session, template_id: int, *, include_deleted: bool = False) -> MissionTemplate:
    t = db.get(MissionTemplate, template_id)
    if t is None or (t.is_deleted and not include_deleted):
        raise NotFound("Mission template not found")
    return t


def list_templates(db: Session, clinic_id: Optional[int] = None) -> List[MissionTemplate]:
    """Global templates plus, when clinic_id is given, that clinic's own."""
    q = select(MissionTemplate).where(MissionTemplate.deleted_at.is_(None))
    if clinic_id is None:
        q = q.where(MissionTemplate.clinic_id.is_(None))
    else:
        q = q.where(or_(MissionTemplate.clinic_id.is_(None), MissionTemplate.clinic_id == clinic_id))
    return list(db.scalars(q.order_by(MissionTemplate.id)).all())


def _apply_column_defaults(t: MissionTemplate) -> None:
    # column defaults only land at INSERT; validation runs before that
    for col in MissionTemplate.__table__.columns:
        if col.default is not None and col.default.is_scalar and getattr(t, col.key) is None:
            setattr(t, col.key, col.default.arg)


def create_template(db: Session, values: dict) -> MissionTemplate:
    t = MissionTemplate(**values)
    _apply_column_defaults(t)
    t.name = (t.name or "").strip()
    validate_template(t)
    db.add(t)
    db.flush()
    logger.info(f"[catalog] Created template {t.id} '{t.name}' (clinic={t.clinic_id})")
    return t


def update_template(db: Session, template_id: int, values: dict) -> MissionTemplate:
    t = get_template(db, template_id)
    for k, v in values.items():
        setattr(t, k, v)
    validate_template(t)
    db.flush()
    return t


def delete_template(db: Session, template_id: int, now: datetime) -> None:
    """Soft delete: instances and assignments keep pointing at it."""
    t = get_template(db, template_id)
    t.deleted_at = now
    db.flush()
    logger.info(f"[catalog] Soft-deleted template {t.id}")
