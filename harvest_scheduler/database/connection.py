"""
Database connection management for the harvest scheduler.

Engines and session factories are built from an explicit configuration
and handed to their users; nothing here is cached process-wide.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from harvest_scheduler.config import HarvestSchedulerConfig

logger = logging.getLogger(__name__)


def get_db_path(config: HarvestSchedulerConfig) -> Optional[Path]:
    """
    Get the database file path.

    Args:
        config: Harvest scheduler configuration

    Returns:
        Path to the SQLite database file, or None for other databases
        and in-memory SQLite
    """
    db_url = config.database_url
    if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
        return Path(db_url[10:])
    return None


def init_engine(config: HarvestSchedulerConfig) -> Engine:
    """
    Create the SQLAlchemy engine.

    Args:
        config: Harvest scheduler configuration

    Returns:
        Configured SQLAlchemy engine
    """
    db_path = get_db_path(config)
    connect_args = {}
    if config.database_url.startswith("sqlite"):
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        connect_args = {
            "check_same_thread": False,  # Sessions run in worker threads
            "timeout": 30,
        }

    engine = create_engine(
        config.database_url,
        connect_args=connect_args,
        pool_pre_ping=True,
        echo=False,
    )

    logger.debug(f"Database engine initialized: {config.database_url}")
    return engine


def get_session_maker(engine: Engine) -> sessionmaker:
    """
    Create a session maker bound to an engine.

    Args:
        engine: SQLAlchemy engine

    Returns:
        Configured session maker
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def get_db_session(session_maker: sessionmaker) -> Generator[Session, None, None]:
    """
    Get a database session context manager.

    Commits on success and rolls back on error.

    Usage:
        with get_db_session(session_maker) as session:
            config = PeriodicConfigRepository(session).get("diku")

    Args:
        session_maker: Session factory

    Yields:
        SQLAlchemy Session
    """
    session = session_maker()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """
    Create all database tables.

    Args:
        engine: SQLAlchemy engine
    """
    from harvest_scheduler.database.models import Base

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
