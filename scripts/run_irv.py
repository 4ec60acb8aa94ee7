#!/usr/bin/env python3
"""
Run instant-runoff tabulation on a JSON ballot file or a stored session.

The JSON file holds {"candidates": [...], "ballots": [[...], ...]}.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sessions import SessionDatabase, SessionError, SessionStore  # noqa: E402
from tabulation import (  # noqa: E402
    InstantRunoffTabulator,
    InvalidInputError,
    ResultsVerifier,
)

logger = logging.getLogger(__name__)

STATUS_SYMBOLS = {
    "elected": "🏆",
    "eliminated": "❌",
    "continuing": "  ",
    "already_eliminated": "- ",
}


def load_ballot_file(path: Path):
    with open(path, "r") as f:
        data = json.load(f)
    if "candidates" not in data:
        raise ValueError(f"{path} has no 'candidates' list")
    return data["candidates"], data.get("ballots", [])


def print_rounds(tabulator: InstantRunoffTabulator):
    print("\n=== Round-by-Round Results ===")
    round_summary = tabulator.get_round_summary()
    if round_summary.empty:
        print("No ballots submitted.")
        return

    for round_num in sorted(round_summary["round"].unique()):
        round_data = round_summary[round_summary["round"] == round_num]
        round_data = round_data[round_data["status"] != "already_eliminated"]
        print(f"\nRound {round_num}:")
        print(f"Majority threshold: more than {round_data.iloc[0]['threshold']:.1f}")

        for _, row in round_data.sort_values(
            "votes", ascending=False, kind="stable"
        ).iterrows():
            symbol = STATUS_SYMBOLS.get(row["status"], "  ")
            print(f"  {symbol} {str(row['candidate']):25s}: {row['votes']:6d} votes")

        if round_data.iloc[0]["exhausted_ballots"] > 0:
            print(
                f"     {'Exhausted':25s}: {round_data.iloc[0]['exhausted_ballots']:6d} ballots"
            )


def main():
    parser = argparse.ArgumentParser(description="Run instant-runoff tabulation")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", help="JSON file with candidates and ballots")
    source.add_argument("--session", help="Session code to tabulate (needs --db)")
    parser.add_argument("--db", help="Path to DuckDB session database")
    parser.add_argument("--export", help="Export round summary to CSV file")
    parser.add_argument(
        "--verify", action="store_true", help="Cross-check the winner with PyRankVote"
    )
    parser.add_argument(
        "--log-level", default="INFO", help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        if args.session:
            if not args.db or not Path(args.db).exists():
                logger.error("--session requires an existing --db database file.")
                sys.exit(1)
            with SessionDatabase(args.db) as db:
                store = SessionStore(db)
                tabulator = store.get_tabulator(args.session)
        else:
            candidates, ballots = load_ballot_file(Path(args.input))
            tabulator = InstantRunoffTabulator(candidates, ballots)

        logger.info("=== Instant-Runoff Tabulation ===")
        tabulator.run_tabulation()
    except (OSError, ValueError, InvalidInputError, SessionError) as e:
        logger.error(f"Tabulation failed: {e}")
        sys.exit(1)

    print_rounds(tabulator)

    print("\n=== Final Results ===")
    print(f"Winner: {tabulator.winner}")
    if tabulator.result.decided_by_fallback:
        print("(all remaining candidates tied; decided by option order)")

    if args.export:
        tabulator.get_round_summary().to_csv(args.export, index=False)
        logger.info(f"Round summary exported to {args.export}")

    if args.verify:
        verifier = ResultsVerifier(tabulator.candidates, tabulator.ballots)
        report = verifier.verify_results()
        print()
        print(verifier.generate_verification_report(report))
        if not report["verification_passed"]:
            sys.exit(2)


if __name__ == "__main__":
    main()
