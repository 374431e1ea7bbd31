# backend/aligner_missions/routers/mission_programs.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from aligner_missions import timeutil
from aligner_missions.db import get_db
from aligner_missions.schemas.mission_program import (
    ApplyRequest,
    ApplyResponse,
    CellsUpdate,
    MissionProgramCreate,
    MissionProgramOut,
    MissionProgramUpdate,
    ProgramGridOut,
)
from aligner_missions.services import programs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mission-programs", tags=["mission-programs"])


@router.get("", response_model=List[MissionProgramOut])
def list_programs(clinic_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    return programs.list_programs(db, clinic_id)


@router.get("/{program_id}", response_model=MissionProgramOut)
def get_program(program_id: int, db: Session = Depends(get_db)):
    return programs.get_program(db, program_id)


@router.get("/{program_id}/grid", response_model=ProgramGridOut)
def get_grid(program_id: int, db: Session = Depends(get_db)):
    p = programs.get_program(db, program_id)
    return {"program_id": p.id, "rows": programs.grid(p)}


@router.post("", response_model=MissionProgramOut, status_code=201)
def create_program(payload: MissionProgramCreate, db: Session = Depends(get_db)):
    values = payload.model_dump(exclude={"templates"})
    entries = [e.model_dump() for e in payload.templates]
    p = programs.create_program(db, values, entries)
    db.commit()
    return p


@router.put("/{program_id}", response_model=MissionProgramOut)
def update_program(program_id: int, payload: MissionProgramUpdate, db: Session = Depends(get_db)):
    """Metadata, full entry replacement (`templates`) and/or grid toggles (`cells`)."""
    values = payload.model_dump(exclude_unset=True, exclude={"templates", "cells"})
    entries = [e.model_dump() for e in payload.templates] if payload.templates is not None else None
    cells = [c.model_dump() for c in payload.cells] if payload.cells is not None else None
    p = programs.update_program(db, program_id, values, entries, cells)
    db.commit()
    return p


@router.put("/{program_id}/cells", response_model=ProgramGridOut)
def set_cells(program_id: int, payload: CellsUpdate, db: Session = Depends(get_db)):
    p = None
    for c in payload.cells:
        p = programs.set_cell(db, program_id, c.mission_template_id, c.aligner_number, c.active)
    if p is None:
        p = programs.get_program(db, program_id)
    db.commit()
    logger.info(f"[mission-programs] Program {program_id}: {len(payload.cells)} cell(s) updated")
    return {"program_id": p.id, "rows": programs.grid(p)}


@router.delete("/{program_id}", status_code=204)
def delete_program(program_id: int, db: Session = Depends(get_db)):
    programs.delete_program(db, program_id)
    db.commit()
    return None


@router.post("/{program_id}/apply", response_model=ApplyResponse)
def apply_program(program_id: int, payload: ApplyRequest, db: Session = Depends(get_db)):
    result = programs.apply_program(
        db, program_id, payload.patient_id, timeutil.utcnow(), total_aligners=payload.total_aligners
    )
    db.commit()
    return ApplyResponse.model_validate(result)
