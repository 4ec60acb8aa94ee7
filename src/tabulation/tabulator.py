import logging
from typing import List, Optional, Sequence

import pandas as pd

try:
    from .irv import Ballot, Candidate, IRVResult, IRVRound, tabulate
except ImportError:
    from tabulation.irv import Ballot, Candidate, IRVResult, IRVRound, tabulate

logger = logging.getLogger(__name__)


class InstantRunoffTabulator:
    """
    Instant-runoff tabulation engine with round-by-round reporting.
    Works on a snapshot of the candidates and ballots taken at construction.
    """

    def __init__(self, candidates: Sequence[Candidate], ballots: Sequence[Ballot]):
        """
        Initialize tabulator.

        Args:
            candidates: Candidate catalog in display order
            ballots: Rankings, best-preferred first
        """
        self.candidates: List[Candidate] = list(candidates)
        self.ballots: List[tuple] = [tuple(ballot) for ballot in ballots]
        self.result: Optional[IRVResult] = None
        self.rounds: List[IRVRound] = []
        self.eliminated: List[Candidate] = []

    @property
    def winner(self):
        return self.result.winner if self.result else None

    def run_tabulation(self) -> List[IRVRound]:
        """
        Run complete instant-runoff tabulation.

        Returns:
            List of IRVRound objects representing each round
        """
        logger.info(
            f"Starting IRV tabulation: {len(self.candidates)} candidates, "
            f"{len(self.ballots)} ballots"
        )
        self.result = tabulate(self.candidates, self.ballots)
        self.rounds = self.result.rounds
        self.eliminated = [c for r in self.rounds for c in r.eliminated_this_round]

        logger.info("IRV tabulation complete:")
        logger.info(f"Winner: {self.result.winner}")
        logger.info(f"Total rounds: {len(self.rounds)}")
        return self.rounds

    def get_round_summary(self) -> pd.DataFrame:
        """
        Get summary of all rounds as a DataFrame.

        Returns:
            DataFrame with round-by-round results
        """
        if not self.rounds:
            return pd.DataFrame()

        summary_data = []
        for round_obj in self.rounds:
            for candidate in self.candidates:
                summary_data.append(
                    {
                        "round": round_obj.round_number,
                        "candidate": candidate,
                        "votes": round_obj.vote_totals.get(candidate, 0),
                        "threshold": round_obj.threshold,
                        "status": self._get_candidate_status(candidate, round_obj),
                        "exhausted_ballots": round_obj.exhausted_ballots,
                    }
                )

        return pd.DataFrame(summary_data)

    def _get_candidate_status(self, candidate: Candidate, round_obj: IRVRound) -> str:
        """Get the status of a candidate in a given round."""
        if candidate == round_obj.winner:
            return "elected"
        elif candidate in round_obj.eliminated_this_round:
            return "eliminated"
        elif candidate in round_obj.continuing_candidates:
            return "continuing"
        else:
            return "already_eliminated"

    def get_final_results(self) -> pd.DataFrame:
        """
        Get final results, one row per candidate.

        Returns:
            DataFrame sorted by final votes, winner first
        """
        if not self.rounds:
            return pd.DataFrame()

        results_data = []
        for candidate in self.candidates:
            last_round = next(
                r
                for r in reversed(self.rounds)
                if candidate in r.continuing_candidates
            )
            results_data.append(
                {
                    "candidate": candidate,
                    "final_votes": last_round.vote_totals[candidate],
                    "status": (
                        "elected" if candidate == self.winner else "not_elected"
                    ),
                    "last_round": last_round.round_number,
                    "eliminated_round": (
                        last_round.round_number
                        if candidate in last_round.eliminated_this_round
                        and candidate != self.winner
                        else None
                    ),
                }
            )

        results = pd.DataFrame(results_data)
        results["is_winner"] = results["status"] == "elected"
        return (
            results.sort_values(
                ["is_winner", "last_round", "final_votes"],
                ascending=False,
                kind="stable",
            )
            .drop(columns="is_winner")
            .reset_index(drop=True)
        )
