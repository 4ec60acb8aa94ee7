class SessionError(Exception):
    """Base class for session store errors."""


class SessionNotFoundError(SessionError):
    """No session exists for the given code."""


class SessionClosedError(SessionError):
    """The session no longer accepts the requested change."""


class NotSessionHostError(SessionError):
    """Only the session host may perform this action."""


class InvalidOptionError(SessionError):
    """An option could not be added to the session."""


class InvalidBallotError(SessionError):
    """A ranking is not a permutation of the session's options."""


class NoBallotsError(SessionError):
    """Voting cannot close before any ballot is submitted."""


class InvalidTitleError(SessionError):
    """A session needs a non-empty title."""
