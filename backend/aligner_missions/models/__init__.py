# backend/aligner_missions/models/__init__.py
# IMPORTANT: Use Base from aligner_missions.db since all models import from there
from aligner_missions.db import Base

# import all model modules so tables get registered on Base.metadata
from .patient import Patient
from .treatment import Treatment, Aligner
from .mission_template import MissionTemplate
from .mission_program import MissionProgram, MissionProgramTemplate
from .mission_assignment import MissionAssignment
from .patient_mission import PatientMission
from .points import PatientPoints, PointTransaction


__all__ = [
    "Base",
    "Patient",
    "Treatment",
    "Aligner",
    "MissionTemplate",
    "MissionProgram",
    "MissionProgramTemplate",
    "MissionAssignment",
    "PatientMission",
    "PatientPoints",
    "PointTransaction",
]
