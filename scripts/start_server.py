#!/usr/bin/env python3
"""
Serve the RankVote API over a DuckDB session database.

The database schema is created before uvicorn starts, so a bad path or a
file locked by another process fails here rather than on the first vote.
"""

import argparse
import logging
import os
import socket
import sys
from pathlib import Path

import uvicorn

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sessions import SessionDatabase  # noqa: E402
from web.main import DATABASE_PATH_ENV, set_database_path  # noqa: E402

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(description="Serve ranked-choice voting sessions")
    parser.add_argument(
        "--db",
        required=True,
        help="DuckDB session database (created if missing)",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Preferred port")
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Try the next ports when the preferred one is busy",
    )
    parser.add_argument(
        "--reload", action="store_true", help="Restart on source changes"
    )
    parser.add_argument("--log-level", default="info", help="Logging level")
    return parser


def prepare_database(db_path: Path) -> None:
    """Create the session tables, failing fast if the file cannot be opened."""
    with SessionDatabase(str(db_path)) as db:
        db.initialize_schema()
        count = db.query("SELECT COUNT(*) AS n FROM sessions").iloc[0]["n"]
    logger.info(f"Session database ready: {db_path} ({count} existing sessions)")


def port_is_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def choose_port(host: str, port: int, auto: bool, attempts: int = 10):
    """Return the port to serve on, or None if none is free."""
    if not auto:
        return port
    return next(
        (p for p in range(port, port + attempts) if port_is_free(host, p)), None
    )


def main():
    args = build_parser().parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    db_path = Path(args.db).absolute()
    if not db_path.parent.is_dir():
        logger.error(f"Directory does not exist: {db_path.parent}")
        sys.exit(1)

    try:
        prepare_database(db_path)
    except Exception as e:
        logger.error(f"Cannot open session database {db_path}: {e}")
        sys.exit(1)

    port = choose_port(args.host, args.port, args.auto_port)
    if port is None:
        logger.error(f"No free port in {args.port}-{args.port + 9}")
        sys.exit(1)
    if port != args.port:
        logger.warning(f"Port {args.port} is busy, serving on {port}")

    # The reloader imports the app in a fresh process, so pass the path on too
    set_database_path(str(db_path))
    os.environ[DATABASE_PATH_ENV] = str(db_path)

    logger.info(f"RankVote listening on http://{args.host}:{port}")
    uvicorn.run(
        "web.main:app",
        host=args.host,
        port=port,
        reload=args.reload,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
