"""
Session store for group decisions.

Sessions hold a catalog of options and one ranked ballot per participant.
Closing a session tabulates the ballots by instant runoff and stores the winner.
"""

from .database import SessionDatabase
from .errors import (
    InvalidBallotError,
    InvalidOptionError,
    InvalidTitleError,
    NoBallotsError,
    NotSessionHostError,
    SessionClosedError,
    SessionError,
    SessionNotFoundError,
)
from .store import MAX_OPTIONS, MIN_OPTIONS, Session, SessionStore

__all__ = [
    "SessionDatabase",
    "SessionStore",
    "Session",
    "MAX_OPTIONS",
    "MIN_OPTIONS",
    "SessionError",
    "SessionNotFoundError",
    "SessionClosedError",
    "NotSessionHostError",
    "InvalidOptionError",
    "InvalidTitleError",
    "InvalidBallotError",
    "NoBallotsError",
]
