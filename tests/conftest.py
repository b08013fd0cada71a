"""
Pytest configuration for Cocina Druid Retriever tests.

Provides an in-memory SQLite registry per test.
"""

import pytest

from cocina_retriever.db import (
    DruidRegistry,
    create_db_engine,
    init_db,
    make_session_factory,
)


@pytest.fixture
def session():
    """A session on a fresh in-memory database with all tables created."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    factory = make_session_factory(engine)
    with factory() as db_session:
        yield db_session
    engine.dispose()


@pytest.fixture
def registry(session):
    return DruidRegistry(session)
