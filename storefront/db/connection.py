from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from storefront.config import get_settings
from storefront.config.logging import get_logger

logger = get_logger("db")

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _resolve_url(url: str | None = None) -> str:
    """Return the configured database URL, falling back to a local SQLite file."""
    settings = get_settings()
    url = url or settings.database.url or None

    if url and url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url:
        return url

    data_dir = Path(settings.database.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{data_dir}/storefront.db"


def make_engine(url: str | None = None) -> Engine:
    """Create an engine for PostgreSQL (pooled) or SQLite (local development)."""
    database_url = _resolve_url(url)

    if database_url.startswith("postgresql"):
        engine = create_engine(
            database_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )
        logger.info(f"Using PostgreSQL: {database_url.split('@')[1] if '@' in database_url else 'configured'}")
    else:
        engine = create_engine(database_url, echo=False)
        logger.info(f"Using SQLite: {database_url}")
    return engine


def configure(url: str | None = None) -> Engine:
    """(Re)bind the module-level engine and session factory."""
    global _engine, _session_factory
    _engine = make_engine(url)
    _session_factory = sessionmaker(bind=_engine, autoflush=False, autocommit=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        configure()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        configure()
    return _session_factory


def get_session():
    """Get a database session context manager."""
    return get_session_factory()()


def init_db(engine: Engine | None = None) -> None:
    """Create any missing tables."""
    from storefront.db.models import Base

    Base.metadata.create_all(bind=engine or get_engine())


def reset_engine() -> None:
    """Dispose the module-level engine (useful for tests)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
