"""Election results assembly."""

from __future__ import annotations

from typing import Any

from scrutiny.services.attendance_service import AttendanceService
from scrutiny.services.common import SupabaseService, group_by
from scrutiny.services.majority import Advance, Tie, majority_threshold, reconcile, resolve
from scrutiny.services.position_service import STATUS_OPEN, STATUS_PENDING, PositionService
from scrutiny.services.tally_service import tally_votes
from scrutiny.utils.errors import NotFoundError
from supabase import Client


class ResultsService:
    """Build per-position results from stored winners and live tallies."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.attendance = AttendanceService(client)
        self.positions = PositionService(client)

    def election_votes(self, election_id: str) -> list[dict[str, Any]]:
        """All votes of an election, read in one query."""
        return self.db.select_many(
            "votes",
            filters={"election_id": election_id},
            order_by="created_at",
        )

    def position_result(
        self,
        instance: dict[str, Any],
        candidates: list[dict[str, Any]],
        votes: list[dict[str, Any]],
        stored_winner: dict[str, Any] | None,
    ) -> dict[str, Any]:
        """Result of one position at its current round."""
        round_number = int(instance["current_round"])
        tally = tally_votes(votes, round_number, [str(row["id"]) for row in candidates])

        snapshot = instance.get("present_count_snapshot")
        if instance["status"] == STATUS_PENDING or snapshot is None:
            threshold = None
            decision = None
        else:
            threshold = majority_threshold(round_number, int(snapshot))
            decision = resolve(tally, int(snapshot), round_number)
        # Only an open position can still produce a live winner.
        live = decision if instance["status"] == STATUS_OPEN else None
        outcome = reconcile(stored_winner, live)

        by_id = {str(row["id"]): row for row in candidates}
        candidate_rows = []
        for candidate_id, count in tally.ranked():
            candidate = by_id.get(candidate_id, {})
            elected = candidate_id == outcome.winner_id
            candidate_rows.append(
                {
                    "candidate_id": candidate_id,
                    "name": candidate.get("name", ""),
                    "email": candidate.get("email", ""),
                    "user_id": candidate.get("user_id"),
                    "votes": count,
                    "is_elected": elected,
                    "won_at_round": outcome.won_at_round if elected else None,
                }
            )

        unresolved = not outcome.recorded and instance["status"] == STATUS_OPEN
        return {
            "position_instance_id": str(instance["id"]),
            "position_id": str(instance["position_id"]),
            "position_name": instance.get("position_name", ""),
            "status": instance["status"],
            "order_index": instance["order_index"],
            "current_round": round_number,
            "attendance_snapshot": snapshot,
            "majority_threshold": threshold,
            "total_voters": tally.distinct_voters,
            "blank_votes": tally.blank,
            "candidates": candidate_rows,
            "winner_id": outcome.winner_id,
            "won_at_round": outcome.won_at_round,
            "winner_recorded": outcome.recorded,
            "needs_next_round": unresolved and isinstance(decision, Advance),
            "has_tie": unresolved and isinstance(decision, Tie),
        }

    def get_results(self, election_id: str) -> dict[str, Any]:
        """Results for every position of an election, in voting order."""
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        instances = self.positions.list_for_election(election_id)

        votes_by_position = group_by(self.election_votes(election_id), "position_id")
        candidates_by_position = group_by(
            self.db.select_many(
                "candidates",
                filters={"election_id": election_id},
                order_by="name",
            ),
            "position_id",
        )
        winners = {
            str(row["position_id"]): row
            for row in self.db.select_many("election_winners", filters={"election_id": election_id})
        }

        positions = [
            self.position_result(
                instance,
                candidates_by_position.get(str(instance["position_id"]), []),
                votes_by_position.get(str(instance["position_id"]), []),
                winners.get(str(instance["position_id"])),
            )
            for instance in instances
        ]
        open_position = next((row for row in positions if row["status"] == STATUS_OPEN), None)

        return {
            "election_id": str(election["id"]),
            "election_name": election["name"],
            "is_active": election["is_active"],
            "created_at": election.get("created_at"),
            "closed_at": election.get("closed_at"),
            "present_count": self.attendance.present_count(election_id),
            "current_round": open_position["current_round"] if open_position else 1,
            "positions": positions,
        }

    def latest(self) -> dict[str, Any]:
        """Results of the most recently finalized election."""
        rows = self.db.select_many(
            "elections",
            filters={"is_active": False},
            order_by="created_at",
            descending=True,
            limit=1,
        )
        if not rows:
            raise NotFoundError("Finalized election")
        return self.get_results(str(rows[0]["id"]))
