"""Vote aggregation tests."""

from __future__ import annotations

import pytest
from conftest import SeededElection, cast_ballots

from scrutiny.services.position_service import PositionService
from scrutiny.services.tally_service import (
    BlankBallot,
    CandidateBallot,
    TallyService,
    ballot_from_row,
    tally_votes,
)
from scrutiny.utils.errors import InvalidInputError, NotFoundError


def test_ballot_from_row() -> None:
    """A null candidate is a blank ballot."""
    assert ballot_from_row({"candidate_id": None}) == BlankBallot()
    assert ballot_from_row({"candidate_id": "c1"}) == CandidateBallot("c1")


def test_tally_votes_counts_only_requested_round() -> None:
    """Rows from other rounds are ignored; every candidate is listed."""
    rows = [
        {"voter_id": "v1", "candidate_id": "a", "round": 1},
        {"voter_id": "v2", "candidate_id": "a", "round": 1},
        {"voter_id": "v3", "candidate_id": None, "round": 1},
        {"voter_id": "v1", "candidate_id": "b", "round": 2},
    ]
    tally = tally_votes(rows, 1, ["a", "b", "c"])

    assert tally.per_candidate == {"a": 2, "b": 0, "c": 0}
    assert tally.blank == 1
    assert tally.distinct_voters == 3
    assert tally.total_votes == 3
    assert tally.ranked()[0] == ("a", 2)


def test_tally_votes_empty_round() -> None:
    """No ballots yields zero counts for every candidate."""
    tally = tally_votes([], 2, ["a"])
    assert tally.per_candidate == {"a": 0}
    assert tally.blank == 0
    assert tally.distinct_voters == 0


def test_tally_service_reads_committed_votes(seeded: SeededElection) -> None:
    """The service tally reflects every committed ballot of the current round."""
    PositionService(seeded.db).open(seeded.instances[0])
    a, b = seeded.candidate(0, 0), seeded.candidate(0, 1)
    cast_ballots(seeded, [a, a, b, None])

    tally = TallyService(seeded.db).tally(seeded.instances[0])

    assert tally.round == 1
    assert tally.per_candidate == {a: 2, b: 1}
    assert tally.blank == 1
    assert tally.distinct_voters == 4


@pytest.mark.parametrize("round_number", [0, 4])
def test_tally_service_rejects_unknown_round(seeded: SeededElection, round_number: int) -> None:
    """Asking for a round outside 1-3 is invalid input, round 0 included."""
    with pytest.raises(InvalidInputError):
        TallyService(seeded.db).tally(seeded.instances[0], round_number=round_number)


def test_tally_service_unknown_position(seeded: SeededElection) -> None:
    """Unknown position instances are reported as not found."""
    with pytest.raises(NotFoundError):
        TallyService(seeded.db).tally("missing")
