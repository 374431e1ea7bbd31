# backend/aligner_missions/main.py
from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from aligner_missions.db import healthcheck
from aligner_missions.errors import MissionError

# templates first: /missions/templates must win over /missions/{mission_id}
from aligner_missions.routers.mission_templates import router as mission_templates_router
from aligner_missions.routers.missions import router as missions_router
from aligner_missions.routers.mission_programs import router as mission_programs_router
from aligner_missions.routers.patients import router as patients_router
from aligner_missions.routers.points import router as points_router

logger = logging.getLogger(__name__)


def build_app() -> FastAPI:
    app = FastAPI(title="Aligner Missions API")

    frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[frontend_origin],
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.exception_handler(MissionError)
    async def mission_error_handler(_req: Request, exc: MissionError):
        logger.info(f"[api] {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})

    # Health
    @app.get("/health")
    def health():
        return {"ok": True, "db": healthcheck()["status"]}

    app.include_router(mission_templates_router)
    app.include_router(missions_router)
    app.include_router(mission_programs_router)
    app.include_router(patients_router)
    app.include_router(points_router)

    return app


app = build_app()
