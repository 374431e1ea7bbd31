# backend/aligner_missions/routers/mission_templates.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from aligner_missions import timeutil
from aligner_missions.db import get_db
from aligner_missions.schemas.mission_template import (
    MissionTemplateCreate,
    MissionTemplateOut,
    MissionTemplateUpdate,
)
from aligner_missions.services import catalog

# mounted before the missions router so /missions/{id} doesn't shadow it
router = APIRouter(prefix="/missions/templates", tags=["mission-templates"])


@router.get("", response_model=List[MissionTemplateOut])
def list_templates(clinic_id: Optional[int] = Query(None), db: Session = Depends(get_db)):
    """Global templates, plus the clinic's own when clinic_id is given."""
    return catalog.list_templates(db, clinic_id)


@router.get("/{template_id}", response_model=MissionTemplateOut)
def get_template(template_id: int, db: Session = Depends(get_db)):
    return catalog.get_template(db, template_id)


@router.post("", response_model=MissionTemplateOut, status_code=201)
def create_template(payload: MissionTemplateCreate, db: Session = Depends(get_db)):
    t = catalog.create_template(db, payload.model_dump())
    db.commit()
    return t


@router.put("/{template_id}", response_model=MissionTemplateOut)
def update_template(template_id: int, payload: MissionTemplateUpdate, db: Session = Depends(get_db)):
    t = catalog.update_template(db, template_id, payload.model_dump(exclude_unset=True))
    db.commit()
    return t


@router.delete("/{template_id}", status_code=204)
def delete_template(template_id: int, db: Session = Depends(get_db)):
    catalog.delete_template(db, template_id, timeutil.utcnow())
    db.commit()
    return None
