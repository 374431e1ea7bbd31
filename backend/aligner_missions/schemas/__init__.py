# backend/aligner_missions/schemas/__init__.py

# Templates
from .mission_template import (
    MissionTemplateCreate,
    MissionTemplateUpdate,
    MissionTemplateOut,
)

# Patient missions
from .patient_mission import (
    PatientMissionOut,
    ActivateRequest,
    ActivateResponse,
    DomainEventRequest,
    ValidateRequest,
    CloneRequest,
    CloneResponse,
)

# Programs
from .mission_program import (
    MissionProgramCreate,
    MissionProgramUpdate,
    MissionProgramOut,
    CellsUpdate,
    ProgramGridOut,
    ApplyRequest,
    ApplyResponse,
)

# Patients / treatment / points
from .patient import PatientCreate, PatientOut, TreatmentIn, TreatmentOut, StartAlignerIn
from .points import PatientPointsOut, PointTransactionOut

__all__ = [
    "MissionTemplateCreate", "MissionTemplateUpdate", "MissionTemplateOut",
    "PatientMissionOut", "ActivateRequest", "ActivateResponse",
    "DomainEventRequest", "ValidateRequest", "CloneRequest", "CloneResponse",
    "MissionProgramCreate", "MissionProgramUpdate", "MissionProgramOut",
    "CellsUpdate", "ProgramGridOut", "ApplyRequest", "ApplyResponse",
    "PatientCreate", "PatientOut", "TreatmentIn", "TreatmentOut", "StartAlignerIn",
    "PatientPointsOut", "PointTransactionOut",
]
