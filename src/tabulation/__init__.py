"""
Tabulation module for ranked-choice group decisions.

This module provides instant-runoff (single-winner ranked-choice) tabulation:
- resolve: Pure function returning the winner or the NO_VOTES sentinel
- tabulate: Same algorithm, with a round-by-round record
- InstantRunoffTabulator: DataFrame reporting over a tabulation
- ResultsVerifier: Cross-check against the PyRankVote library
"""

from .irv import (
    NO_VOTES,
    InvalidInputError,
    IRVResult,
    IRVRound,
    TabulationOutcome,
    majority_threshold,
    resolve,
    tabulate,
)
from .tabulator import InstantRunoffTabulator
from .verification import ResultsVerifier

__all__ = [
    "resolve",
    "tabulate",
    "majority_threshold",
    "NO_VOTES",
    "TabulationOutcome",
    "InvalidInputError",
    "IRVRound",
    "IRVResult",
    "InstantRunoffTabulator",
    "ResultsVerifier",
]
