"""Ballot casting."""

from __future__ import annotations

import logging
from typing import Any

from scrutiny.services.attendance_service import AttendanceService
from scrutiny.services.common import SupabaseService
from scrutiny.services.position_service import STATUS_OPEN
from scrutiny.services.tally_service import ROUNDS
from scrutiny.utils.errors import (
    ConflictError,
    IneligibleError,
    InvalidInputError,
    InvalidStateError,
)
from supabase import Client

logger = logging.getLogger(__name__)


def _already_voted() -> ConflictError:
    return ConflictError("You have already voted in this round", code="ALREADY_VOTED")


class VoteService:
    """Accept one ballot per voter per position round."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.attendance = AttendanceService(client)

    def has_voted(self, voter_id: str, position_id: str, election_id: str, round_number: int) -> bool:
        rows = self.db.select_many(
            "votes",
            filters={
                "voter_id": voter_id,
                "position_id": position_id,
                "election_id": election_id,
                "round": round_number,
            },
            columns="id",
            limit=1,
        )
        return bool(rows)

    def cast(
        self,
        voter_id: str,
        position_id: str,
        election_id: str,
        round_number: int,
        candidate_id: str | None,
    ) -> dict[str, Any]:
        """Record a ballot for the open position; ``candidate_id=None`` is blank.

        Every check runs before the insert. Two concurrent ballots from the same
        voter are settled by the votes unique constraint.
        """
        if round_number not in ROUNDS:
            raise InvalidInputError(f"Round must be one of {ROUNDS}")
        if candidate_id in ("", "0", 0):
            candidate_id = None

        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        if not election["is_active"] or election.get("closed_at"):
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")

        if not self.attendance.is_present(election_id, voter_id):
            raise IneligibleError()

        if self.has_voted(voter_id, position_id, election_id, round_number):
            raise _already_voted()

        open_rows = self.db.select_many(
            "election_positions",
            filters={"election_id": election_id, "status": STATUS_OPEN},
            limit=1,
        )
        if not open_rows:
            raise InvalidStateError("No position is open for voting", code="NO_OPEN_POSITION")
        instance = open_rows[0]
        if str(instance["position_id"]) != str(position_id):
            raise InvalidStateError("This position is not open for voting", code="POSITION_NOT_OPEN")
        if int(instance["current_round"]) != round_number:
            raise InvalidStateError(
                f"Round {round_number} is not active; current round is {instance['current_round']}",
                code="ROUND_NOT_ACTIVE",
            )

        if candidate_id is not None:
            candidates = self.db.select_many(
                "candidates",
                filters={"position_id": position_id, "election_id": election_id},
                columns="id",
            )
            if str(candidate_id) not in {str(row["id"]) for row in candidates}:
                raise InvalidInputError("Candidate not found for this position and election")

        vote = self.db.insert_one(
            "votes",
            {
                "voter_id": voter_id,
                "candidate_id": candidate_id,
                "position_id": position_id,
                "election_id": election_id,
                "round": round_number,
            },
            conflict=_already_voted(),
        )
        logger.debug("Vote %s recorded for position %s round %s", vote["id"], position_id, round_number)
        return vote
