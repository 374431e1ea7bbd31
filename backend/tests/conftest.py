import os
import tempfile
from datetime import date, datetime

# point db.py at a throwaway SQLite file BEFORE importing the package
_tmpdir = tempfile.mkdtemp(prefix="aligner-missions-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmpdir, 'test.db')}"

import pytest
from fastapi.testclient import TestClient

from aligner_missions import timeutil
from aligner_missions.db import SessionLocal, drop_db, init_db
from aligner_missions.models import Patient
from aligner_missions.models.enums import CompletionCriteria, MissionCategory, MissionFrequency
from aligner_missions.services import catalog, treatments

# Monday
NOW = datetime(2026, 3, 2, 9, 0, 0)
START = date(2026, 3, 2)


@pytest.fixture(autouse=True)
def fresh_db():
    init_db()
    yield
    drop_db()


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_template(db):
    def _make(**overrides):
        values = dict(
            name="Wear your aligner",
            category=MissionCategory.USAGE,
            frequency=MissionFrequency.ONCE,
            completion_criteria=CompletionCriteria.TOTAL_COUNT,
            target_value=3,
            base_points=10,
            bonus_points=2,
        )
        values.update(overrides)
        t = catalog.create_template(db, values)
        db.commit()
        return t

    return _make


@pytest.fixture
def make_patient(db):
    def _make(name="Ana", *, start_date=START, total_aligners=20, current_aligner_number=None, now=NOW):
        p = Patient(name=name)
        db.add(p)
        db.flush()
        if start_date is not None:
            treatments.upsert_treatment(
                db,
                p.id,
                now,
                start_date=start_date,
                total_aligners=total_aligners,
                current_aligner_number=current_aligner_number,
            )
        db.commit()
        return p

    return _make


@pytest.fixture
def clock(monkeypatch):
    """Mutable 'now' for the HTTP layer."""

    class Clock:
        now = NOW

        def set(self, value):
            self.now = value

    c = Clock()
    monkeypatch.setattr(timeutil, "utcnow", lambda: c.now)
    return c


@pytest.fixture
def client(clock):
    from aligner_missions.main import app

    with TestClient(app) as c:
        yield c
