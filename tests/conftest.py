"""
Shared pytest configuration and fixtures for rankvote.

This module provides common test fixtures and utilities used across
all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sessions import SessionDatabase, SessionStore  # noqa: E402


@pytest.fixture
def temp_db():
    """Provide a temporary in-memory database for testing."""
    db = SessionDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def temp_db_file():
    """Provide a temporary database file path for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    os.unlink(db_path)  # Let DuckDB create the file

    try:
        yield db_path
    finally:
        for path in (db_path, db_path + ".wal"):
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture
def store(temp_db):
    """Provide a session store over an in-memory database."""
    return SessionStore(temp_db)


@pytest.fixture
def sample_candidates():
    """Provide a sample candidate catalog."""
    return ["Mexican", "Thai", "Pizza", "Sushi"]


@pytest.fixture
def sample_ballots():
    """Provide sample ballots over the sample catalog."""
    return [
        # Mexican wins after Sushi and Pizza are eliminated
        ["Mexican", "Thai", "Pizza", "Sushi"],
        ["Mexican", "Pizza", "Thai", "Sushi"],
        ["Thai", "Mexican", "Sushi", "Pizza"],
        ["Thai", "Sushi", "Mexican", "Pizza"],
        ["Pizza", "Mexican", "Thai", "Sushi"],
    ]


@pytest.fixture
def open_session(store, sample_candidates):
    """Provide a session with options added and no ballots."""
    session = store.create_session("Where should we eat?", "host-1")
    for option in sample_candidates:
        store.add_option(session.code, option)
    return store.get_session(session.code)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (medium speed, database required)",
    )
    config.addinivalue_line(
        "markers",
        "golden: marks tests as golden dataset validation (hand-computed results)",
    )
    config.addinivalue_line(
        "markers", "invariant: marks tests as mathematical invariant validation"
    )
    config.addinivalue_line(
        "markers", "smoke: marks tests as smoke tests (basic functionality check)"
    )
