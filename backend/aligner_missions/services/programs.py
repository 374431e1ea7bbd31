# backend/aligner_missions/services/programs.py
"""
Mission programs: a clinic's reusable grid of (template x aligner number)
activation cells, applied to patients in bulk.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from aligner_missions.errors import BusinessRuleViolation, MissionError, NotFound
from aligner_missions.models.enums import Trigger
from aligner_missions.models.mission_assignment import MissionAssignment
from aligner_missions.models.mission_program import MissionProgram, MissionProgramTemplate
from aligner_missions.models.patient_mission import PatientMission
from aligner_missions.models.treatment import Treatment
from aligner_missions.services import engine
from aligner_missions.services.catalog import get_template

logger = logging.getLogger(__name__)

MAX_PROGRAM_ALIGNERS = int(os.getenv("MAX_PROGRAM_ALIGNERS", "60"))


def _check_aligner_number(n: Optional[int]) -> None:
    if n is None or n < 1 or n > MAX_PROGRAM_ALIGNERS:
        raise BusinessRuleViolation(
            f"Aligner number must be between 1 and {MAX_PROGRAM_ALIGNERS} (got {n})"
        )


def _cell_number(entry: MissionProgramTemplate) -> int:
    # entries without an aligner number sit in the first column
    return entry.trigger_aligner_number or 1


# ----------------------------------------------------------------------
# CRUD
# ----------------------------------------------------------------------
def get_program(db: Session, program_id: int) -> MissionProgram:
    p = db.get(MissionProgram, program_id)
    if p is None:
        raise NotFound("Mission program not found")
    return p


def list_programs(db: Session, clinic_id: Optional[int] = None) -> List[MissionProgram]:
    q = select(MissionProgram)
    if clinic_id is not None:
        q = q.where(or_(MissionProgram.clinic_id.is_(None), MissionProgram.clinic_id == clinic_id))
    return list(db.scalars(q.order_by(MissionProgram.id)).all())


def _entry(program_id: int, spec: dict) -> MissionProgramTemplate:
    trigger = Trigger(spec.get("trigger") or Trigger.ON_ALIGNER_N_START)
    aligner_number = spec.get("trigger_aligner_number")
    if trigger in (Trigger.ON_ALIGNER_N_START, Trigger.DAYS_AFTER_ALIGNER_N):
        _check_aligner_number(aligner_number)
    elif aligner_number is not None:
        _check_aligner_number(aligner_number)
    interval = spec.get("aligner_interval") or 1
    if interval < 1:
        raise BusinessRuleViolation("aligner_interval must be >= 1")
    return MissionProgramTemplate(
        program_id=program_id,
        mission_template_id=spec["mission_template_id"],
        is_active=spec.get("is_active", True),
        aligner_interval=interval,
        trigger=trigger,
        trigger_aligner_number=aligner_number,
        trigger_days_offset=spec.get("trigger_days_offset"),
        custom_points=spec.get("custom_points"),
    )


def replace_templates(db: Session, program: MissionProgram, entries: Iterable[dict]) -> None:
    new_entries = []
    for spec in entries:
        get_template(db, spec["mission_template_id"])
        new_entries.append(_entry(program.id, spec))
    program.templates.clear()
    db.flush()
    program.templates.extend(new_entries)
    db.flush()


def _unset_other_defaults(db: Session, program: MissionProgram) -> None:
    if not program.is_default:
        return
    db.execute(
        update(MissionProgram)
        .where(
            MissionProgram.id != program.id,
            MissionProgram.clinic_id.is_(None) if program.clinic_id is None
            else MissionProgram.clinic_id == program.clinic_id,
        )
        .values(is_default=False)
    )


def create_program(db: Session, values: dict, entries: Iterable[dict] = ()) -> MissionProgram:
    name = (values.get("name") or "").strip()
    if not name:
        raise BusinessRuleViolation("Program name is required")
    p = MissionProgram(
        clinic_id=values.get("clinic_id"),
        name=name,
        description=values.get("description"),
        is_default=bool(values.get("is_default")),
        created_by=values.get("created_by"),
    )
    db.add(p)
    db.flush()
    replace_templates(db, p, entries)
    _unset_other_defaults(db, p)
    logger.info(f"[programs] Created program {p.id} '{p.name}' with {len(p.templates)} entries")
    return p


def update_program(
    db: Session,
    program_id: int,
    values: dict,
    entries: Optional[Iterable[dict]] = None,
    cells: Optional[Iterable[dict]] = None,
) -> MissionProgram:
    p = get_program(db, program_id)
    for k in ("name", "description", "is_default", "clinic_id"):
        if k in values:
            setattr(p, k, values[k].strip() if k == "name" and values[k] else values[k])
    if not (p.name or "").strip():
        raise BusinessRuleViolation("Program name is required")
    if entries is not None:
        replace_templates(db, p, entries)
    for c in cells or ():
        set_cell(db, p.id, c["mission_template_id"], c["aligner_number"], c["active"])
    _unset_other_defaults(db, p)
    db.flush()
    return p


def delete_program(db: Session, program_id: int) -> None:
    p = get_program(db, program_id)
    db.execute(
        update(MissionAssignment).where(MissionAssignment.program_id == p.id).values(program_id=None)
    )
    db.delete(p)
    db.flush()


# ----------------------------------------------------------------------
# Grid
# ----------------------------------------------------------------------
def set_cell(db: Session, program_id: int, template_id: int, aligner_number: int, active: bool) -> MissionProgram:
    """
    Idempotent toggle of one (template, aligner) cell. Activating an active
    cell is a no-op; clearing drops every entry of that template at that
    aligner number.
    """
    p = get_program(db, program_id)
    _check_aligner_number(aligner_number)
    get_template(db, template_id)

    matching = [
        e for e in p.templates
        if e.mission_template_id == template_id and _cell_number(e) == aligner_number
    ]
    if active:
        if any(e.is_active for e in matching):
            return p
        if matching:
            matching[0].is_active = True
            for e in matching[1:]:
                p.templates.remove(e)
            db.flush()
            return p
        p.templates.append(
            MissionProgramTemplate(
                program_id=p.id,
                mission_template_id=template_id,
                is_active=True,
                aligner_interval=1,
                trigger=Trigger.ON_ALIGNER_N_START,
                trigger_aligner_number=aligner_number,
            )
        )
    else:
        for e in matching:
            p.templates.remove(e)
    db.flush()
    return p


def grid(program: MissionProgram) -> List[dict]:
    rows: Dict[int, dict] = {}
    for e in program.templates:
        if not e.is_active:
            continue
        row = rows.setdefault(e.mission_template_id, {"mission_template_id": e.mission_template_id, "aligners": set()})
        row["aligners"].add(_cell_number(e))
    return [
        {"mission_template_id": tid, "aligners": sorted(r["aligners"])}
        for tid, r in sorted(rows.items())
    ]


# ----------------------------------------------------------------------
# Apply
# ----------------------------------------------------------------------
@dataclass
class ApplyItem:
    mission_template_id: int
    aligner_number: Optional[int]
    status: str  # "created" | "skipped" | "failed"
    assignment_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class ApplyResult:
    program_id: int
    patient_id: int
    items: List[ApplyItem] = field(default_factory=list)
    activated: List[PatientMission] = field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(1 for i in self.items if i.status == "created")


def expand_entry(entry: MissionProgramTemplate, total_aligners: Optional[int]) -> List[dict]:
    """
    Per-aligner cadence entries (on_aligner_change with an interval) become one
    on_aligner_N_start cell per reached aligner when the treatment length is known.
    """
    if entry.trigger == Trigger.ON_ALIGNER_CHANGE and total_aligners:
        start = entry.trigger_aligner_number or 1
        step = max(1, entry.aligner_interval or 1)
        return [
            {"trigger": Trigger.ON_ALIGNER_N_START, "aligner_number": n, "days_offset": None}
            for n in range(start, total_aligners + 1, step)
        ]
    return [{
        "trigger": Trigger(entry.trigger),
        "aligner_number": entry.trigger_aligner_number,
        "days_offset": entry.trigger_days_offset,
    }]


def apply_program(
    db: Session,
    program_id: int,
    patient_id: int,
    now: datetime,
    total_aligners: Optional[int] = None,
) -> ApplyResult:
    p = get_program(db, program_id)
    engine.get_patient(db, patient_id)
    if total_aligners is None:
        treatment = db.scalar(select(Treatment).where(Treatment.patient_id == patient_id))
        total_aligners = treatment.total_aligners if treatment else None

    result = ApplyResult(program_id=p.id, patient_id=patient_id)
    for entry in p.templates:
        if not entry.is_active:
            continue
        for cell in expand_entry(entry, total_aligners):
            item = ApplyItem(entry.mission_template_id, cell["aligner_number"], "created")
            try:
                with db.begin_nested():
                    template = get_template(db, entry.mission_template_id)
                    assignment, created = engine.ensure_assignment(
                        db,
                        patient_id,
                        template,
                        cell["trigger"],
                        aligner_number=cell["aligner_number"],
                        days_offset=cell["days_offset"],
                        aligner_interval=entry.aligner_interval,
                        custom_points=entry.custom_points,
                        source="program",
                        program_id=p.id,
                    )
                    item.assignment_id = assignment.id
                    if not created:
                        item.status = "skipped"
                        item.reason = "Already assigned"
            except MissionError as e:
                item.status = "failed"
                item.reason = e.message
            result.items.append(item)

    result.activated = engine.sync_patient(db, patient_id, now)
    logger.info(
        f"[programs] Applied program {p.id} to patient {patient_id}: "
        f"{result.created} created, {len(result.items) - result.created} skipped/failed"
    )
    return result
