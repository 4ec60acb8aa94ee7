"""
Unit tests for the DuckDB-backed session store.
"""

import re

import pytest

from sessions import (
    MAX_OPTIONS,
    InvalidBallotError,
    InvalidOptionError,
    InvalidTitleError,
    NoBallotsError,
    NotSessionHostError,
    SessionClosedError,
    SessionNotFoundError,
)
from sessions.store import generate_session_code


@pytest.mark.unit
def test_generate_session_code_format():
    for _ in range(50):
        assert re.fullmatch(r"[A-Z0-9]{6}", generate_session_code())


@pytest.mark.unit
def test_schema_created(store):
    for table in ("sessions", "options", "ballots_long"):
        assert store.db.table_exists(table)


@pytest.mark.unit
def test_create_session(store):
    session = store.create_session("  Where should we eat?  ", "host-1")

    assert re.fullmatch(r"[A-Z0-9]{6}", session.code)
    assert session.title == "Where should we eat?"
    assert session.host_id == "host-1"
    assert session.options == []
    assert session.ballots == {}
    assert not session.is_voting_closed
    assert session.winner is None
    assert session.created_at is not None


@pytest.mark.unit
def test_create_session_requires_title(store):
    with pytest.raises(InvalidTitleError):
        store.create_session("   ", "host-1")


@pytest.mark.unit
def test_get_missing_session(store):
    with pytest.raises(SessionNotFoundError):
        store.get_session("NOPE00")


@pytest.mark.unit
def test_session_code_is_case_insensitive(store):
    session = store.create_session("Lunch", "host-1")
    assert store.get_session(session.code.lower()).code == session.code


@pytest.mark.unit
def test_add_options_in_order(open_session, sample_candidates):
    assert open_session.options == sample_candidates


@pytest.mark.unit
def test_add_option_trims_and_ignores_duplicates(store):
    session = store.create_session("Lunch", "host-1")
    store.add_option(session.code, "  Tacos ")
    updated = store.add_option(session.code, "Tacos")

    assert updated.options == ["Tacos"]


@pytest.mark.unit
def test_add_empty_option_rejected(store):
    session = store.create_session("Lunch", "host-1")
    with pytest.raises(InvalidOptionError):
        store.add_option(session.code, "   ")


@pytest.mark.unit
def test_option_limit(store):
    session = store.create_session("Lunch", "host-1")
    for i in range(MAX_OPTIONS):
        store.add_option(session.code, f"Option {i}")

    with pytest.raises(InvalidOptionError, match="up to 10"):
        store.add_option(session.code, "One too many")
    assert len(store.get_session(session.code).options) == MAX_OPTIONS


@pytest.mark.unit
def test_options_frozen_after_first_ballot(store, open_session, sample_candidates):
    store.submit_ballot(open_session.code, "p1", sample_candidates)
    with pytest.raises(SessionClosedError):
        store.add_option(open_session.code, "Burgers")


@pytest.mark.unit
def test_submit_ballot(store, open_session, sample_candidates):
    ranking = list(reversed(sample_candidates))
    session = store.submit_ballot(open_session.code, "p1", ranking)

    assert session.ballots == {"p1": ranking}
    assert session.participant_count == 1
    assert session.has_voted("p1")
    assert not session.has_voted("p2")


@pytest.mark.unit
def test_resubmission_replaces_ballot(store, open_session, sample_candidates):
    store.submit_ballot(open_session.code, "p1", sample_candidates)
    ranking = list(reversed(sample_candidates))
    session = store.submit_ballot(open_session.code, "p1", ranking)

    assert session.ballots == {"p1": ranking}
    assert session.participant_count == 1


@pytest.mark.unit
@pytest.mark.parametrize(
    "ranking",
    [
        ["Mexican", "Thai", "Pizza"],  # missing an option
        ["Mexican", "Thai", "Pizza", "Pizza"],  # duplicate
        ["Mexican", "Thai", "Pizza", "Burgers"],  # unknown option
        [],
    ],
)
def test_malformed_ballot_rejected(store, open_session, ranking):
    with pytest.raises(InvalidBallotError):
        store.submit_ballot(open_session.code, "p1", ranking)
    assert store.get_session(open_session.code).ballots == {}


@pytest.mark.unit
def test_ballot_requires_two_options(store):
    session = store.create_session("Lunch", "host-1")
    store.add_option(session.code, "Tacos")
    with pytest.raises(InvalidBallotError, match="at least 2"):
        store.submit_ballot(session.code, "p1", ["Tacos"])


@pytest.mark.unit
def test_close_voting_requires_host(store, open_session, sample_candidates):
    store.submit_ballot(open_session.code, "p1", sample_candidates)
    with pytest.raises(NotSessionHostError):
        store.close_voting(open_session.code, "p1")


@pytest.mark.unit
def test_close_voting_requires_ballots(store, open_session):
    with pytest.raises(NoBallotsError, match="no votes"):
        store.close_voting(open_session.code, "host-1")
    assert not store.get_session(open_session.code).is_voting_closed


@pytest.mark.unit
def test_close_voting_persists_winner(store, open_session, sample_ballots):
    for i, ballot in enumerate(sample_ballots):
        store.submit_ballot(open_session.code, f"p{i}", ballot)

    session = store.close_voting(open_session.code, "host-1")

    assert session.is_voting_closed
    assert session.winner == "Mexican"
    assert session.closed_at is not None
    assert store.get_session(open_session.code).winner == "Mexican"


@pytest.mark.unit
def test_closed_session_rejects_changes(store, open_session, sample_candidates):
    store.submit_ballot(open_session.code, "p1", sample_candidates)
    store.close_voting(open_session.code, "host-1")

    with pytest.raises(SessionClosedError):
        store.submit_ballot(open_session.code, "p2", sample_candidates)
    with pytest.raises(SessionClosedError):
        store.add_option(open_session.code, "Burgers")
    with pytest.raises(SessionClosedError):
        store.close_voting(open_session.code, "host-1")


@pytest.mark.unit
def test_sessions_are_isolated(store, sample_candidates):
    first = store.create_session("Lunch", "host-1")
    second = store.create_session("Dinner", "host-2")
    for option in sample_candidates:
        store.add_option(first.code, option)
    store.add_option(second.code, "Tacos")
    store.add_option(second.code, "Ramen")

    store.submit_ballot(first.code, "p1", sample_candidates)
    store.submit_ballot(second.code, "p1", ["Ramen", "Tacos"])

    assert store.get_session(first.code).ballots == {"p1": sample_candidates}
    assert store.get_session(second.code).ballots == {"p1": ["Ramen", "Tacos"]}


@pytest.mark.unit
def test_get_tabulator_uses_snapshot(store, open_session, sample_ballots):
    for i, ballot in enumerate(sample_ballots):
        store.submit_ballot(open_session.code, f"p{i}", ballot)

    tabulator = store.get_tabulator(open_session.code)
    tabulator.run_tabulation()

    assert tabulator.winner == "Mexican"
    assert len(tabulator.rounds) == 3
