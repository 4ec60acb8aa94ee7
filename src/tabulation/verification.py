import logging
from typing import Dict, List, Sequence

from pyrankvote import Ballot as PRVBallot
from pyrankvote import Candidate as PRVCandidate
from pyrankvote import instant_runoff_voting

try:
    from .irv import NO_VOTES, Ballot, Candidate, IRVResult, tabulate
except ImportError:
    from tabulation.irv import NO_VOTES, Ballot, Candidate, IRVResult, tabulate

logger = logging.getLogger(__name__)


class ResultsVerifier:
    """
    Cross-checks our instant-runoff results against the PyRankVote library.

    PyRankVote eliminates one candidate per round, so the comparison is only
    meaningful for elections where no round had a tie for last place.
    """

    def __init__(self, candidates: Sequence[Candidate], ballots: Sequence[Ballot]):
        """
        Initialize verifier.

        Args:
            candidates: Candidate catalog in display order
            ballots: Rankings, best-preferred first
        """
        self.candidates = list(candidates)
        self.ballots = [tuple(ballot) for ballot in ballots]
        self.candidates_map: Dict[str, PRVCandidate] = {}
        self.ballots_data: List[PRVBallot] = []

    def _prepare_pyrankvote_data(self):
        """Convert candidates and ballots to PyRankVote format."""
        self.candidates_map = {str(c): PRVCandidate(str(c)) for c in self.candidates}
        known = set(self.candidates)

        self.ballots_data = []
        for ballot in self.ballots:
            ranked_candidates = []
            seen_candidates = set()  # PyRankVote rejects repeated candidates
            for choice in ballot:
                if choice in known and choice not in seen_candidates:
                    ranked_candidates.append(self.candidates_map[str(choice)])
                    seen_candidates.add(choice)

            if ranked_candidates:
                self.ballots_data.append(PRVBallot(ranked_candidates=ranked_candidates))

        logger.debug(
            f"Prepared {len(self.candidates_map)} candidates and "
            f"{len(self.ballots_data)} ballots for PyRankVote"
        )

    def _comparison_blockers(self, result: IRVResult) -> List[str]:
        reasons = []
        if result.winner is NO_VOTES:
            reasons.append("no ballots submitted")
        if len(self.candidates_map) != len(self.candidates):
            reasons.append("candidate labels collide when converted to text")
        if result.decided_by_fallback:
            reasons.append("winner decided by the all-tied fallback")
        tied_rounds = [
            r.round_number for r in result.rounds if len(r.eliminated_this_round) > 1
        ]
        if tied_rounds:
            reasons.append(f"simultaneous eliminations in rounds {tied_rounds}")
        return reasons

    def verify_results(self) -> Dict:
        """
        Tabulate with both implementations and compare winners.

        Returns:
            Verification report dictionary
        """
        result = tabulate(self.candidates, self.ballots)
        self._prepare_pyrankvote_data()

        blockers = self._comparison_blockers(result)
        pyrankvote_winner = None

        if not blockers and len(self.candidates) > 1:
            election = instant_runoff_voting(
                candidates=list(self.candidates_map.values()),
                ballots=self.ballots_data,
            )
            winners = election.get_winners()
            pyrankvote_winner = winners[0].name if winners else None
        elif not blockers:
            pyrankvote_winner = str(self.candidates[0])

        comparable = not blockers
        winners_match = comparable and pyrankvote_winner == str(result.winner)
        if comparable and not winners_match:
            logger.warning(
                f"Winner mismatch: ours={result.winner}, "
                f"pyrankvote={pyrankvote_winner}"
            )

        return {
            "comparable": comparable,
            "not_comparable_reasons": blockers,
            "winners_match": winners_match,
            "our_winner": result.winner,
            "pyrankvote_winner": pyrankvote_winner,
            "rounds": len(result.rounds),
            "total_ballots": result.total_ballots,
            "verification_passed": winners_match or not comparable,
        }

    def generate_verification_report(self, verification_results: Dict) -> str:
        """
        Generate a human-readable verification report.

        Args:
            verification_results: Results from verify_results()

        Returns:
            Formatted verification report string
        """
        report = []
        report.append("=" * 60)
        report.append("INSTANT-RUNOFF CROSS-CHECK REPORT")
        report.append("=" * 60)

        if not verification_results["comparable"]:
            report.append("⚠️  NOT COMPARABLE - PyRankVote breaks ties differently")
            for reason in verification_results["not_comparable_reasons"]:
                report.append(f"  - {reason}")
        elif verification_results["winners_match"]:
            report.append("✅ VERIFICATION PASSED - Winners match PyRankVote")
        else:
            report.append("❌ VERIFICATION FAILED - Winners differ")

        report.append("")
        report.append(f"Our winner: {verification_results['our_winner']}")
        report.append(f"PyRankVote winner: {verification_results['pyrankvote_winner']}")
        report.append(f"Rounds: {verification_results['rounds']}")
        report.append(f"Total ballots: {verification_results['total_ballots']}")

        return "\n".join(report)
