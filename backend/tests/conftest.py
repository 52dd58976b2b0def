"""Pytest fixtures for StudioFlow tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from studioflow.db.session import Base

# Ensure all models are loaded for create_all
import studioflow.models  # noqa: F401


@pytest.fixture(scope="function")
def db():
    """Create an in-memory SQLite DB with all tables for tests."""
    engine = create_engine("sqlite+pysqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(tmp_path):
    """Sessionmaker over a file-backed SQLite DB, for tests that need two independent sessions."""
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'studioflow.db'}", echo=False)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield SessionLocal
    finally:
        engine.dispose()
