# backend/aligner_missions/services/cloning.py
"""
Copy a patient's open missions to other patients.

Every target runs in its own SAVEPOINT and produces its own result entry, so
one bad target never rolls back the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from aligner_missions.errors import BusinessRuleViolation, MissionError, ValidationError
from aligner_missions.models.enums import OPEN_STATUSES, Trigger
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.services import activator, engine

logger = logging.getLogger(__name__)


@dataclass
class CloneSuccess:
    target_id: int
    created: List[int] = field(default_factory=list)  # new mission ids
    skipped: List[int] = field(default_factory=list)  # template ids already open on the target


@dataclass
class CloneFailure:
    target_id: int
    reason: str


@dataclass
class CloneResult:
    source_id: int
    succeeded: List[CloneSuccess] = field(default_factory=list)
    failed: List[CloneFailure] = field(default_factory=list)


def _source_missions(db: Session, patient_id: int) -> List[PatientMission]:
    return list(
        db.scalars(
            select(PatientMission)
            .where(
                PatientMission.patient_id == patient_id,
                PatientMission.status.in_(OPEN_STATUSES),
            )
            .order_by(PatientMission.id)
        )
        .unique()
        .all()
    )


def _clone_to(db: Session, missions: List[PatientMission], target_id: int, now: datetime) -> CloneSuccess:
    engine.get_patient(db, target_id)
    out = CloneSuccess(target_id=target_id)
    for src in missions:
        template = src.template
        if activator.find_open(db, target_id, template.id) is not None:
            out.skipped.append(template.id)
            continue

        assignment, _ = engine.ensure_assignment(
            db,
            target_id,
            template,
            Trigger(src.trigger),
            aligner_number=src.trigger_aligner_number,
            days_offset=src.trigger_days_offset,
            custom_points=src.custom_points,
            source="clone",
        )
        ctx = activator.TriggerContext(
            trigger=Trigger(src.trigger),
            period_key=src.period_key,
            aligner_number=src.trigger_aligner_number,
            days_offset=src.trigger_days_offset,
            assignment_id=assignment.id,
            custom_points=src.custom_points,
            automatic=False,
        )
        mission, created = activator.try_activate(db, target_id, template, ctx, now)
        if created:
            out.created.append(mission.id)
        else:
            # same period already used up on the target (e.g. completed earlier)
            out.skipped.append(template.id)
    return out


def clone(db: Session, source_patient_id: int, target_patient_ids: Iterable[int], now: datetime) -> CloneResult:
    engine.get_patient(db, source_patient_id)
    targets = list(dict.fromkeys(target_patient_ids))
    if not targets:
        raise ValidationError("target_patient_ids must not be empty")

    engine.sync_patient(db, source_patient_id, now)
    missions = _source_missions(db, source_patient_id)
    if not missions:
        raise BusinessRuleViolation(f"Patient {source_patient_id} has no open missions to clone")

    result = CloneResult(source_id=source_patient_id)
    for target_id in targets:
        if target_id == source_patient_id:
            result.failed.append(CloneFailure(target_id, "Target is the source patient"))
            continue
        try:
            with db.begin_nested():
                result.succeeded.append(_clone_to(db, missions, target_id, now))
        except MissionError as e:
            logger.warning(f"[cloning] Target {target_id} failed: {e.message}")
            result.failed.append(CloneFailure(target_id, e.message))

    logger.info(
        f"[cloning] Cloned {len(missions)} mission(s) from patient {source_patient_id}: "
        f"{len(result.succeeded)} target(s) ok, {len(result.failed)} failed"
    )
    return result
