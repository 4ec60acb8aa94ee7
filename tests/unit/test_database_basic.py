"""
Basic database functionality unit tests.

These tests verify core database operations without requiring
external data files or complex setups.
"""

from unittest.mock import patch

import duckdb
import pandas as pd
import pytest

from sessions.database import SessionDatabase, connect_with_retry


@pytest.mark.unit
def test_database_creation(temp_db):
    """Test that database can be created and closed."""
    assert temp_db is not None
    assert temp_db.conn is not None
    assert temp_db.db_path == ":memory:"


@pytest.mark.unit
def test_default_path_is_memory():
    assert SessionDatabase().db_path == ":memory:"


@pytest.mark.unit
def test_basic_query(temp_db):
    """Test basic SQL query execution."""
    result = temp_db.query("SELECT 1 as test_value")
    assert isinstance(result, pd.DataFrame)
    assert len(result) == 1
    assert result.iloc[0]["test_value"] == 1


@pytest.mark.unit
def test_parameterized_query(temp_db):
    temp_db.initialize_schema()
    temp_db.execute(
        "INSERT INTO options VALUES (?, ?, ?)", ["ABC123", 0, "O'Brien's Pub"]
    )
    result = temp_db.query(
        "SELECT option_text FROM options WHERE session_code = ?", ["ABC123"]
    )
    assert result.iloc[0]["option_text"] == "O'Brien's Pub"


@pytest.mark.unit
def test_initialize_schema_is_idempotent(temp_db):
    temp_db.initialize_schema()
    temp_db.initialize_schema()
    for table in ("sessions", "options", "ballots_long"):
        assert temp_db.table_exists(table)
    assert not temp_db.table_exists("candidates")


@pytest.mark.unit
def test_close_and_reconnect(temp_db):
    temp_db.conn
    temp_db.close()
    assert temp_db._conn is None
    # A new connection is created on demand
    assert temp_db.query("SELECT 2 AS v").iloc[0]["v"] == 2


@pytest.mark.unit
def test_context_manager():
    with SessionDatabase(":memory:") as db:
        db.query("SELECT 1")
    assert db._conn is None


@pytest.mark.unit
def test_connect_retries_on_lock():
    conn = object()
    lock_error = duckdb.IOException("Could not set lock on file: Conflicting lock")
    with (
        patch("sessions.database.duckdb.connect", side_effect=[lock_error, conn]),
        patch("sessions.database.time.sleep") as mock_sleep,
    ):
        assert connect_with_retry("votes.db") is conn
    mock_sleep.assert_called_once()


@pytest.mark.unit
def test_connect_gives_up_after_retries():
    lock_error = duckdb.IOException("Conflicting lock")
    with (
        patch("sessions.database.duckdb.connect", side_effect=lock_error),
        patch("sessions.database.time.sleep"),
    ):
        with pytest.raises(duckdb.IOException):
            connect_with_retry("votes.db", max_retries=2)


@pytest.mark.unit
def test_connect_does_not_retry_other_errors():
    with (
        patch(
            "sessions.database.duckdb.connect",
            side_effect=duckdb.IOException("No such file"),
        ) as mock_connect,
        patch("sessions.database.time.sleep") as mock_sleep,
    ):
        with pytest.raises(duckdb.IOException):
            connect_with_retry("missing.db", read_only=True)
    assert mock_connect.call_count == 1
    mock_sleep.assert_not_called()
