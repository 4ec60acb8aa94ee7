import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from tabulation import InstantRunoffTabulator, resolve

from .database import SessionDatabase
from .errors import (
    InvalidBallotError,
    InvalidOptionError,
    InvalidTitleError,
    NoBallotsError,
    NotSessionHostError,
    SessionClosedError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

MAX_OPTIONS = 10
MIN_OPTIONS = 2
SESSION_CODE_LENGTH = 6
SESSION_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class Session:
    """A group decision: its options, ballots and outcome."""

    code: str
    title: str
    host_id: str
    options: List[str] = field(default_factory=list)
    ballots: Dict[str, List[str]] = field(default_factory=dict)
    is_voting_closed: bool = False
    winner: Optional[str] = None
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def participant_count(self) -> int:
        return len(self.ballots)

    def has_voted(self, participant_id: str) -> bool:
        return participant_id in self.ballots


def generate_session_code(length: int = SESSION_CODE_LENGTH) -> str:
    """Generate a random uppercase alphanumeric session code."""
    return "".join(secrets.choice(SESSION_CODE_ALPHABET) for _ in range(length))


def normalize_session_code(code: str) -> str:
    return code.strip().upper()


class SessionStore:
    """
    Persists decision sessions in DuckDB.

    Every operation runs under the database lock, so closing a session
    tabulates a snapshot no concurrent ballot can change.
    """

    def __init__(self, db: SessionDatabase):
        """
        Initialize the store and make sure its tables exist.

        Args:
            db: Session database (file-backed or in-memory)
        """
        self.db = db
        self.db.initialize_schema()

    def _session_exists(self, code: str) -> bool:
        row = self.db.execute(
            "SELECT COUNT(*) FROM sessions WHERE session_code = ?", [code]
        ).fetchone()
        return row[0] > 0

    def create_session(self, title: str, host_id: str) -> Session:
        """
        Create a new session owned by `host_id`.

        Args:
            title: Question the group is deciding
            host_id: Participant identifier of the session host

        Returns:
            The new, empty session
        """
        title = (title or "").strip()
        if not title:
            raise InvalidTitleError("Session title must not be empty")

        with self.db.lock:
            code = generate_session_code()
            while self._session_exists(code):
                code = generate_session_code()

            self.db.execute(
                """
                INSERT INTO sessions
                    (session_code, title, host_id, is_voting_closed, created_at)
                VALUES (?, ?, ?, FALSE, ?)
                """,
                [code, title, host_id, datetime.now()],
            )

        logger.info(f"Created session {code} for host {host_id}")
        return self.get_session(code)

    def get_session(self, code: str) -> Session:
        """
        Load a session with its options and ballots.

        Raises:
            SessionNotFoundError: If no session has this code
        """
        code = normalize_session_code(code)
        with self.db.lock:
            row = self.db.execute(
                """
                SELECT session_code, title, host_id, is_voting_closed, winner,
                       created_at, closed_at
                FROM sessions
                WHERE session_code = ?
                """,
                [code],
            ).fetchone()
            if row is None:
                raise SessionNotFoundError(f"Session not found: {code}")

            options = self.db.query(
                "SELECT option_text FROM options WHERE session_code = ? ORDER BY position",
                [code],
            )
            ballots = self.get_ballots(code)

        return Session(
            code=row[0],
            title=row[1],
            host_id=row[2],
            options=list(options["option_text"]),
            ballots=ballots,
            is_voting_closed=bool(row[3]),
            winner=row[4],
            created_at=row[5],
            closed_at=row[6],
        )

    def get_ballots(self, code: str) -> Dict[str, List[str]]:
        """Return every participant's ranking, keyed by participant identifier."""
        code = normalize_session_code(code)
        ballot_prefs = self.db.query(
            """
            SELECT participant_id, rank_position, option_text
            FROM ballots_long
            WHERE session_code = ?
            ORDER BY participant_id, rank_position
            """,
            [code],
        )

        ballots = {}
        for participant_id, group in ballot_prefs.groupby("participant_id"):
            ballots[participant_id] = list(
                group.sort_values("rank_position")["option_text"]
            )
        return ballots

    def add_option(self, code: str, option: str) -> Session:
        """
        Add an option to a session that has not started collecting ballots.

        Re-adding an existing option is a no-op.

        Raises:
            InvalidOptionError: Empty option or option limit reached
            SessionClosedError: Voting closed or ballots already submitted
        """
        option = (option or "").strip()
        if not option:
            raise InvalidOptionError("Option must not be empty")

        with self.db.lock:
            session = self.get_session(code)
            if session.is_voting_closed:
                raise SessionClosedError("Voting is closed for this session")
            if session.ballots:
                raise SessionClosedError(
                    "Options cannot change after ballots have been submitted"
                )
            if option in session.options:
                return session
            if len(session.options) >= MAX_OPTIONS:
                raise InvalidOptionError(
                    f"You can only add up to {MAX_OPTIONS} options."
                )

            self.db.execute(
                "INSERT INTO options VALUES (?, ?, ?)",
                [session.code, len(session.options), option],
            )
            logger.info(f"Session {session.code}: added option {option!r}")
            return self.get_session(session.code)

    def submit_ballot(
        self, code: str, participant_id: str, ranking: Sequence[str]
    ) -> Session:
        """
        Record a participant's ranking, replacing any earlier one.

        Raises:
            SessionClosedError: Voting is closed
            InvalidBallotError: Too few options, or ranking is not a
                permutation of the options
        """
        ranking = list(ranking)
        with self.db.lock:
            session = self.get_session(code)
            if session.is_voting_closed:
                raise SessionClosedError("Voting is closed for this session")
            if len(session.options) < MIN_OPTIONS:
                raise InvalidBallotError(
                    f"You need at least {MIN_OPTIONS} options to start voting."
                )
            if len(ranking) != len(session.options) or set(ranking) != set(
                session.options
            ):
                raise InvalidBallotError(
                    "Ranking must list every option exactly once"
                )

            submitted_at = datetime.now()
            self.db.conn.begin()
            try:
                self.db.execute(
                    "DELETE FROM ballots_long WHERE session_code = ? AND participant_id = ?",
                    [session.code, participant_id],
                )
                self.db.conn.executemany(
                    "INSERT INTO ballots_long VALUES (?, ?, ?, ?, ?)",
                    [
                        (session.code, participant_id, position, option, submitted_at)
                        for position, option in enumerate(ranking, 1)
                    ],
                )
                self.db.conn.commit()
            except Exception as e:
                self.db.conn.rollback()
                logger.error(f"Error recording ballot for session {session.code}: {e}")
                raise

            replaced = "replaced" if session.has_voted(participant_id) else "recorded"
            logger.info(f"Session {session.code}: {replaced} ballot of {participant_id}")
            return self.get_session(session.code)

    def close_voting(self, code: str, requester_id: str) -> Session:
        """
        Close voting, tabulate the ballots and persist the winner.

        Raises:
            NotSessionHostError: Requester is not the host
            SessionClosedError: Voting was already closed
            NoBallotsError: No ballots were submitted
        """
        with self.db.lock:
            session = self.get_session(code)
            if session.host_id != requester_id:
                raise NotSessionHostError("Only the host can close voting")
            if session.is_voting_closed:
                raise SessionClosedError("Voting is already closed")
            if not session.ballots:
                raise NoBallotsError("Cannot close voting with no votes.")

            winner = resolve(session.options, list(session.ballots.values()))
            self.db.execute(
                """
                UPDATE sessions
                SET is_voting_closed = TRUE, winner = ?, closed_at = ?
                WHERE session_code = ?
                """,
                [str(winner), datetime.now(), session.code],
            )
            logger.info(
                f"Session {session.code}: voting closed with "
                f"{session.participant_count} ballots, winner {winner!r}"
            )
            return self.get_session(session.code)

    def get_tabulator(self, code: str) -> InstantRunoffTabulator:
        """Build a tabulator over a snapshot of the session's options and ballots."""
        session = self.get_session(code)
        return InstantRunoffTabulator(session.options, list(session.ballots.values()))
