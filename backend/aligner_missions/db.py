# backend/aligner_missions/db.py
import os
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

# --- SQLAlchemy Base ---------------------------------------------------------
class Base(DeclarativeBase):
    pass

# --- Engine / Session --------------------------------------------------------
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+psycopg://missions:devpass@db:5432/aligner_missions",
)

# SQLite connections are shared with the request threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# pool_pre_ping avoids “stale” connections on container restarts
engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True, connect_args=_connect_args)

if engine.dialect.name == "sqlite":
    # let SQLAlchemy drive BEGIN itself so SAVEPOINTs (begin_nested) behave
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

# FastAPI dependency
def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create every table registered on Base.metadata."""
    import aligner_missions.models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    import aligner_missions.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


# Used by main during startup and/or /health route
def healthcheck() -> dict:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok"}
