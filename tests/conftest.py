"""
Pytest configuration and fixtures for RollGroups tests.
"""

import os
import tempfile
from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from rollgroups.database.engine import create_database_engine
from rollgroups.database.init_db import init_database
from rollgroups.database.session import get_session, get_session_factory
from rollgroups.main import app
from helpers import NOW, add_roll, add_states, add_student


@pytest.fixture
def test_engine():
    """Create an engine on a temporary SQLite file, one per test."""
    fd, temp_db = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    engine = create_database_engine(f"sqlite:///{temp_db}")
    init_database(engine)

    try:
        yield engine
    finally:
        engine.dispose()
        try:
            os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture
def session_factory(test_engine):
    """Create a test session factory."""
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db_session(session_factory):
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db_session, session_factory):
    """Create a test client with database dependency overrides."""

    def override_get_session():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_students(db_session):
    """Students S, T and U."""
    return {
        "S": add_student(db_session, "Sam", "Sterling"),
        "T": add_student(db_session, "Tina", "Tran"),
        "U": add_student(db_session, "Uma", "Upton"),
    }


@pytest.fixture
def sample_rolls(db_session, sample_students):
    """
    Two rolls inside the week before NOW plus one older roll.

    Inside the window S has 4 absent and 1 late, T has 2 absent, U is present.
    The old roll gives T enough absences to qualify if it were counted.
    """
    students = sample_students
    first = add_roll(db_session, "Roll 1", NOW - timedelta(days=2))
    second = add_roll(db_session, "Roll 2", NOW - timedelta(days=5))
    old = add_roll(db_session, "Old roll", NOW - timedelta(days=20))

    add_states(db_session, students["S"], first, "absent", 2)
    add_states(db_session, students["S"], second, "absent", 2)
    add_states(db_session, students["S"], second, "late", 1)
    add_states(db_session, students["T"], first, "absent", 1)
    add_states(db_session, students["T"], second, "absent", 1)
    add_states(db_session, students["U"], first, "present", 1)
    add_states(db_session, students["U"], second, "present", 1)
    add_states(db_session, students["T"], old, "absent", 5)

    return {"first": first, "second": second, "old": old}
