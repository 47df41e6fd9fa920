"""
Database connection and session management built on the central configuration.
"""

from __future__ import annotations

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import DatabaseConfig, get_settings
from .logging import get_logger
from .models import Base

logger = get_logger(__name__)


def create_database_engine(config: DatabaseConfig | None = None) -> Engine:
    """
    Create a SQLAlchemy engine from configuration.

    Example:
        >>> engine = create_database_engine(DatabaseConfig(sqlite_path="./tracker.db"))
    """
    if config is None:
        config = get_settings().database

    connection_url = config.get_connection_url()
    logger.info("Creating database engine for %s backend", config.backend)
    logger.debug("Connection URL: %s@***", connection_url.split("@")[0])

    try:
        engine = create_engine(connection_url, **config.get_engine_options())
    except Exception as e:
        logger.error("Failed to create database engine: %s", e)
        raise
    logger.info("Database engine created successfully")
    return engine


def create_session_factory(engine: Engine | None = None) -> sessionmaker[Session]:
    """
    Create a session factory bound to ``engine`` (or a configured engine).

    Example:
        >>> SessionLocal = create_session_factory()
        >>> with SessionLocal() as session:
        ...     pass
    """
    if engine is None:
        engine = create_database_engine()

    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )


def initialise_database(engine: Engine) -> bool:
    """
    Ensure all ORM tables exist.

    Returns:
        True if every table already existed before this call, False if at least one table
        needed to be created.
    """
    existing_tables = set(inspect(engine).get_table_names())
    expected_tables = [table.name for table in Base.metadata.sorted_tables]
    already_exists = all(table in existing_tables for table in expected_tables)
    Base.metadata.create_all(engine)
    logger.info("Database schema %s", "already present" if already_exists else "created")
    return already_exists


def is_database_configured() -> bool:
    """Check whether the configured database URL can be built."""
    try:
        get_settings().database.get_connection_url()
        return True
    except Exception as e:
        logger.warning("Database configuration invalid: %s", e)
        return False
