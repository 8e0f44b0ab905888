"""Candidate nomination tests."""

from __future__ import annotations

import pytest
from conftest import SeededElection

from scrutiny.services.candidate_service import CandidateService
from scrutiny.services.position_service import PositionService
from scrutiny.utils.errors import ConflictError, InvalidStateError, NotFoundError


def test_add_copies_member_details(seeded: SeededElection) -> None:
    """Candidates carry the member's name and email."""
    candidate = CandidateService(seeded.db).add(
        seeded.members[3], seeded.positions[0], seeded.election_id
    )
    assert candidate["name"] == "Member 03"
    assert candidate["email"] == "m3@example.com"


def test_duplicate_nomination_is_a_conflict(seeded: SeededElection) -> None:
    with pytest.raises(ConflictError) as exc_info:
        CandidateService(seeded.db).add(seeded.members[0], seeded.positions[0], seeded.election_id)
    assert exc_info.value.code == "DUPLICATE_CANDIDATE"


def test_completed_position_takes_no_candidates(seeded: SeededElection) -> None:
    service = PositionService(seeded.db)
    service.open(seeded.instances[0])
    service.force_close(seeded.instances[0])

    with pytest.raises(InvalidStateError):
        CandidateService(seeded.db).add(seeded.members[3], seeded.positions[0], seeded.election_id)


def test_position_must_belong_to_election(seeded: SeededElection) -> None:
    with pytest.raises(NotFoundError):
        CandidateService(seeded.db).add(seeded.members[3], "missing", seeded.election_id)


def test_add_many_and_listing(seeded: SeededElection) -> None:
    """Batch nominations show up in position and election listings."""
    service = CandidateService(seeded.db)
    service.add_many(
        [
            {
                "user_id": seeded.members[4],
                "position_id": seeded.positions[1],
                "election_id": seeded.election_id,
            }
        ]
    )

    names = [row["name"] for row in service.list_for_position(seeded.positions[1], seeded.election_id)]
    assert names == ["Member 00", "Member 01", "Member 04"]

    every = service.list_for_election(seeded.election_id)
    assert len(every) == 5
    assert {row["position_name"] for row in every} == {"President", "Secretary"}


def test_add_many_rejects_whole_batch_on_unknown_member(seeded: SeededElection) -> None:
    """One bad nomination leaves the candidate table untouched."""
    before = len(seeded.db.tables["candidates"])
    nominations = [
        {"user_id": user_id, "position_id": seeded.positions[0], "election_id": seeded.election_id}
        for user_id in (seeded.members[2], "missing")
    ]

    with pytest.raises(NotFoundError):
        CandidateService(seeded.db).add_many(nominations)
    assert len(seeded.db.tables["candidates"]) == before


def test_add_many_rejects_whole_batch_on_duplicate(seeded: SeededElection) -> None:
    before = len(seeded.db.tables["candidates"])
    nominations = [
        {"user_id": user_id, "position_id": seeded.positions[0], "election_id": seeded.election_id}
        for user_id in (seeded.members[2], seeded.members[0])
    ]

    with pytest.raises(ConflictError) as exc_info:
        CandidateService(seeded.db).add_many(nominations)
    assert exc_info.value.code == "DUPLICATE_CANDIDATE"
    assert len(seeded.db.tables["candidates"]) == before
