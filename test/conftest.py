"""
Shared fixtures: an in-memory database per test and a store on top of it.
"""

import pytest

from chugzone.api.database import make_memory_sessionmaker
from chugzone.api.sessions import SessionStore


@pytest.fixture
def session_factory():
    return make_memory_sessionmaker()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return SessionStore(db)
