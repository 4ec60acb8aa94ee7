import logging
import random
import threading
import time
from typing import Any, Optional, Sequence

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)

SCHEMA_SQL = [
    """
    CREATE TABLE IF NOT EXISTS sessions (
        session_code TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        host_id TEXT NOT NULL,
        is_voting_closed BOOLEAN NOT NULL DEFAULT FALSE,
        winner TEXT,
        created_at TIMESTAMP NOT NULL,
        closed_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS options (
        session_code TEXT NOT NULL,
        position INTEGER NOT NULL,
        option_text TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ballots_long (
        session_code TEXT NOT NULL,
        participant_id TEXT NOT NULL,
        rank_position INTEGER NOT NULL,
        option_text TEXT NOT NULL,
        submitted_at TIMESTAMP NOT NULL
    )
    """,
]


def connect_with_retry(
    db_path: str, read_only: bool = False, max_retries: int = 3
) -> duckdb.DuckDBPyConnection:
    """
    Open a DuckDB connection, retrying while another process holds the lock.

    Args:
        db_path: Path to DuckDB file, or ":memory:"
        read_only: Whether to open in read-only mode
        max_retries: Maximum number of connection attempts

    Returns:
        DuckDB connection
    """
    for attempt in range(max_retries):
        try:
            conn = duckdb.connect(db_path, read_only=read_only)
            logger.debug(
                f"Opened {'read-only' if read_only else 'read-write'} "
                f"connection to {db_path}"
            )
            return conn
        except duckdb.IOException as e:
            if "lock" in str(e).lower() and attempt < max_retries - 1:
                # Exponential backoff with jitter
                wait_time = (2**attempt) + random.uniform(0, 1)  # nosec B311
                logger.warning(
                    f"Database locked, retrying in {wait_time:.2f}s (attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(wait_time)
                continue
            logger.error(
                f"Failed to connect to database after {attempt + 1} attempts: {e}"
            )
            raise

    raise duckdb.IOException(
        f"Could not establish database connection after {max_retries} attempts"
    )


class SessionDatabase:
    """
    Manages the DuckDB connection backing the session store.
    A single connection is shared; callers serialize access through `lock`.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = False):
        """
        Initialize database connection manager.

        Args:
            db_path: Path to DuckDB file. If None, uses in-memory database.
            read_only: Whether to open the file read-only
        """
        self.db_path = db_path or ":memory:"
        self.read_only = read_only
        self.lock = threading.RLock()
        self._conn = None  # Will be created on-demand

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create a database connection on-demand."""
        if self._conn is None:
            self._conn = connect_with_retry(self.db_path, self.read_only)
        return self._conn

    def initialize_schema(self):
        """Create the session tables if they do not exist."""
        with self.lock:
            for statement in SCHEMA_SQL:
                self.conn.execute(statement)
        logger.info(f"Session schema ready in {self.db_path}")

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None):
        """Execute a statement with bound parameters."""
        with self.lock:
            if params is None:
                return self.conn.execute(sql)
            return self.conn.execute(sql, params)

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.

        Args:
            sql: SQL query to execute
            params: Positional parameters bound to `?` placeholders
        """
        with self.lock:
            if params is None:
                return self.conn.execute(sql).fetchdf()
            return self.conn.execute(sql, params).fetchdf()

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database."""
        sql = "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?"
        with self.lock:
            result = self.conn.execute(sql, [table_name]).fetchone()
        return result[0] > 0

    def close(self):
        """Close database connection."""
        if self._conn:
            try:
                self._conn.close()
                logger.debug(f"Closed database connection to {self.db_path}")
            except Exception as e:
                logger.warning(f"Error closing database connection: {e}")
            finally:
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
