from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session, sessionmaker

from defense_tracker.infrastructure.config import DatabaseConfig, get_settings
from defense_tracker.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    initialise_database,
)
from defense_tracker.infrastructure.exceptions import ConfigurationError


def get_db_config(request: Request) -> DatabaseConfig:
    config = getattr(request.app.state, "db_config", None)
    if config is None:
        try:
            config = get_settings().database
        except ValueError as exc:
            raise ConfigurationError(f"Invalid database settings: {exc}", config_key="database") from exc
        request.app.state.db_config = config
    return config


def get_session_factory(request: Request) -> sessionmaker[Session]:
    cached_factory = getattr(request.app.state, "session_factory", None)
    if cached_factory is not None:
        return cached_factory

    engine = create_database_engine(get_db_config(request))
    initialise_database(engine)
    session_factory = create_session_factory(engine)
    request.app.state.session_factory = session_factory
    return session_factory


def get_db_session(request: Request) -> Generator[Session, None, None]:
    session_factory = get_session_factory(request)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
