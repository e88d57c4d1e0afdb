"""Database session management for the branch and head-office stores."""

from collections.abc import Generator
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from branchpos.core.config import settings


def _engine_options(database_url: str) -> tuple[dict, dict]:
    if database_url.startswith("sqlite"):
        # SQLite doesn't support connection pooling the same way
        return {"check_same_thread": False}, {"pool_pre_ping": True}
    return {}, {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine, enabling foreign keys on SQLite."""
    connect_args, pool_config = _engine_options(database_url)
    engine = create_engine(database_url, connect_args=connect_args, echo=echo, **pool_config)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(settings.database_url, echo=settings.debug and settings.log_level == "DEBUG")
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

head_office_engine = build_engine(settings.head_office_database_url)
HeadOfficeSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=head_office_engine)


@lru_cache(maxsize=64)
def _branch_sessionmaker(database_url: str) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=build_engine(database_url))


def branch_session(database_url: str) -> Session:
    """Open a session against another branch's store (engines are cached per URL)."""
    return _branch_sessionmaker(database_url)()


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
