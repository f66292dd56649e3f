import uuid
from collections.abc import Generator
from typing import Optional

from fastapi import Header, HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.models.finance import Base


def build_engine(database_url: str) -> Optional[Engine]:
    if not database_url:
        return None

    is_sqlite = database_url.startswith("sqlite")
    # Sync DB work runs in FastAPI's threadpool; SQLite connections must cross threads.
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

    return engine


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None


def init_db(bind: Optional[Engine] = None) -> bool:
    """Create missing tables; returns False when no database is configured."""
    bind = bind if bind is not None else engine
    if bind is None:
        return False
    Base.metadata.create_all(bind=bind)
    return True


def get_db() -> Generator[Session, None, None]:
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not configured")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_team_id(x_team_id: str = Header(..., alias="X-Team-Id")) -> str:
    """Tenant scope for persistence; resolved upstream by the auth gateway."""
    try:
        return str(uuid.UUID(x_team_id.strip()))
    except ValueError:
        raise HTTPException(400, "Invalid X-Team-Id header")
