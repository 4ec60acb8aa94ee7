import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Hashable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

Candidate = Hashable
Ballot = Sequence[Candidate]

EXHAUSTED = "exhausted"


class TabulationOutcome(Enum):
    """Non-candidate tabulation outcomes."""

    NO_VOTES = "No votes submitted yet."

    def __str__(self):
        return self.value


NO_VOTES = TabulationOutcome.NO_VOTES

TabulationResult = Union[Candidate, TabulationOutcome]


class InvalidInputError(ValueError):
    """Raised when the candidate catalog cannot be tabulated."""


@dataclass
class IRVRound:
    """Represents one round of instant-runoff tabulation."""

    round_number: int
    continuing_candidates: List[Candidate]
    vote_totals: Dict[Candidate, int]
    threshold: float
    exhausted_ballots: int
    active_ballots: int
    eliminated_this_round: List[Candidate] = field(default_factory=list)
    winner: Optional[Candidate] = None
    transfers: Dict[Candidate, Dict[Candidate, int]] = field(
        default_factory=dict
    )  # eliminated -> {next choice or "exhausted": ballots}


@dataclass
class IRVResult:
    """Outcome of a full tabulation, with its round-by-round record."""

    winner: TabulationResult
    rounds: List[IRVRound]
    total_ballots: int
    decided_by_fallback: bool = False

    @property
    def has_votes(self) -> bool:
        return self.winner is not NO_VOTES


def _validate_catalog(candidates: Sequence[Candidate]) -> Tuple[Candidate, ...]:
    catalog = tuple(candidates)
    if not catalog:
        raise InvalidInputError("Candidate catalog must contain at least one entry")
    if any(candidate is None for candidate in catalog):
        raise InvalidInputError("Candidate catalog cannot contain None")
    if len(set(catalog)) != len(catalog):
        raise InvalidInputError("Candidate catalog contains duplicate entries")
    return catalog


def _first_choice(
    ballot: Ballot, continuing: FrozenSet[Candidate]
) -> Optional[Candidate]:
    """Return the highest-ranked entry of a ballot that is still continuing."""
    for choice in ballot:
        if choice in continuing:
            return choice
    return None


def majority_threshold(total_ballots: int) -> float:
    """
    Calculate the strict-majority threshold.

    A candidate must hold strictly more than this many first-preference
    votes to win. The denominator is the number of ballots cast, never the
    number still active in a round.

    Args:
        total_ballots: Number of ballots captured before round one

    Returns:
        Half the ballot count, as a float
    """
    return total_ballots / 2


def tabulate(candidates: Sequence[Candidate], ballots: Sequence[Ballot]) -> IRVResult:
    """
    Run instant-runoff tabulation and record every round.

    Each round tallies ballots for their highest-ranked continuing
    candidate. A candidate with more than half of all ballots cast wins.
    Otherwise every candidate tied for the lowest tally is eliminated in
    the same round. If that removes all remaining candidates, the first of
    them in catalog order wins.

    Neither argument is modified.

    Args:
        candidates: Candidate catalog, unique identifiers in display order
        ballots: Rankings, best-preferred first. Entries outside the
            catalog are ignored; repeated entries count once.

    Returns:
        IRVResult with the winner (or NO_VOTES) and the round records

    Raises:
        InvalidInputError: If the catalog is empty, contains None, or has
            duplicates
    """
    catalog = _validate_catalog(candidates)
    snapshot = [tuple(ballot) for ballot in ballots]
    total_ballots = len(snapshot)

    if total_ballots == 0:
        logger.info("No ballots submitted; nothing to tabulate")
        return IRVResult(winner=NO_VOTES, rounds=[], total_ballots=0)

    threshold = majority_threshold(total_ballots)
    logger.debug(
        f"Tabulating {total_ballots} ballots over {len(catalog)} candidates "
        f"(majority threshold {threshold})"
    )

    continuing: Tuple[Candidate, ...] = catalog
    previous_choices: List[Optional[Candidate]] = [None] * total_ballots
    rounds: List[IRVRound] = []

    while True:
        round_number = len(rounds) + 1
        continuing_set = frozenset(continuing)

        vote_totals: Dict[Candidate, int] = {c: 0 for c in continuing}
        transfers: Dict[Candidate, Dict[Candidate, int]] = {}
        choices: List[Optional[Candidate]] = []
        for index, ballot in enumerate(snapshot):
            choice = _first_choice(ballot, continuing_set)
            choices.append(choice)
            if choice is not None:
                vote_totals[choice] += 1

            previous = previous_choices[index]
            if previous is not None and previous not in continuing_set:
                destination = EXHAUSTED if choice is None else choice
                moved = transfers.setdefault(previous, {})
                moved[destination] = moved.get(destination, 0) + 1
        previous_choices = choices

        active = sum(vote_totals.values())
        current = IRVRound(
            round_number=round_number,
            continuing_candidates=list(continuing),
            vote_totals=vote_totals,
            threshold=threshold,
            exhausted_ballots=total_ballots - active,
            active_ballots=active,
            transfers=transfers,
        )
        rounds.append(current)

        if len(continuing) == 1:
            current.winner = continuing[0]
            logger.info(f"Round {round_number}: {current.winner} is the last candidate")
            return IRVResult(current.winner, rounds, total_ballots)

        majority = next((c for c in continuing if vote_totals[c] > threshold), None)
        if majority is not None:
            current.winner = majority
            logger.info(
                f"Round {round_number}: {majority} wins with "
                f"{vote_totals[majority]} of {total_ballots} ballots"
            )
            return IRVResult(majority, rounds, total_ballots)

        # Stable sort keeps catalog order among equal tallies.
        ordered = sorted(continuing, key=lambda c: vote_totals[c])
        lowest = vote_totals[ordered[0]]
        eliminated = [c for c in ordered if vote_totals[c] == lowest]
        current.eliminated_this_round = eliminated

        eliminated_set = frozenset(eliminated)
        continuing = tuple(c for c in continuing if c not in eliminated_set)
        logger.debug(
            f"Round {round_number}: eliminated {eliminated} with {lowest} votes each"
        )

        if not continuing:
            current.winner = eliminated[0]
            logger.warning(
                f"Round {round_number}: all {len(eliminated)} remaining candidates "
                f"tied at {lowest}; {current.winner} wins on catalog order"
            )
            return IRVResult(
                current.winner, rounds, total_ballots, decided_by_fallback=True
            )


def resolve(
    candidates: Sequence[Candidate], ballots: Sequence[Ballot]
) -> TabulationResult:
    """
    Determine the instant-runoff winner.

    Args:
        candidates: Candidate catalog, unique identifiers in display order
        ballots: Rankings, best-preferred first

    Returns:
        The winning candidate, or NO_VOTES when there are no ballots

    Raises:
        InvalidInputError: If the catalog is empty, contains None, or has
            duplicates
    """
    return tabulate(candidates, ballots).winner
