from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from procurement.core.config import Settings, get_settings

settings = get_settings()


def _connect_args(settings: Settings) -> dict:
    if settings.database_url.startswith("sqlite"):
        # TestClient and the sweep worker use the connection from other threads
        return {"check_same_thread": False}
    if not settings.database_url.startswith("postgresql"):
        return {}

    return {
        "connect_timeout": settings.db_connect_timeout_seconds,
        "options": f"-c statement_timeout={settings.db_statement_timeout_ms}",
    }


def build_engine(settings: Settings):
    """Create the SQLAlchemy engine for the configured database."""
    return create_engine(
        settings.database_url,
        future=True,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_seconds,
        pool_recycle=settings.db_pool_recycle_seconds,
        connect_args=_connect_args(settings),
    )


engine = build_engine(settings)

SessionLocal = sessionmaker(bind=engine, future=True)


def get_db():
    """Dependency that provides a database session."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
