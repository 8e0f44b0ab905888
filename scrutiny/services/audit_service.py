"""Audit data for finished or running elections."""

from __future__ import annotations

from typing import Any

from scrutiny.config import settings
from scrutiny.services.common import SupabaseService, group_by
from scrutiny.services.results_service import ResultsService
from scrutiny.services.tally_service import tally_votes
from supabase import Client

BLANK_LABEL = settings.blank_ballot_label


class AuditService:
    """Assemble everything an auditor needs to re-check an election."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.results = ResultsService(client)

    def audit(self, election_id: str) -> dict[str, Any]:
        results = self.results.get_results(election_id)
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        instances = self.results.positions.list_for_election(election_id)
        votes = self.results.election_votes(election_id)
        candidates = self.db.select_many("candidates", filters={"election_id": election_id})
        attendance = self.db.select_many("election_attendance", filters={"election_id": election_id})

        total_members = self.db.count(
            "users",
            filters={"is_member": True, "active_member": True, "is_admin": False},
        )
        users = self.db.get_users_map(
            [row["member_id"] for row in attendance] + [row["voter_id"] for row in votes]
        )

        return {
            "results": results,
            "election_metadata": {
                "created_at": election.get("created_at"),
                "closed_at": election.get("closed_at"),
                "total_positions": len(instances),
                "completed_positions": sum(1 for row in instances if row["status"] == "completed"),
                "total_members": total_members,
            },
            "voter_attendance": voter_attendance(attendance, votes, users),
            "vote_timeline": vote_timeline(votes, users, instances, candidates),
            "round_history": round_history(instances, votes, candidates, results["positions"]),
        }


def voter_attendance(
    attendance: list[dict[str, Any]],
    votes: list[dict[str, Any]],
    users: dict[str, dict[str, Any]],
) -> list[dict[str, Any]]:
    """Presence of every listed member with first vote time and ballot count."""
    by_voter = group_by(votes, "voter_id")
    rows = []
    for entry in attendance:
        member_id = str(entry["member_id"])
        member = users.get(member_id, {})
        ballots = by_voter.get(member_id, [])
        rows.append(
            {
                "voter_id": member_id,
                "voter_name": member.get("full_name", ""),
                "voter_email": member.get("email", ""),
                "is_present": bool(entry.get("is_present")),
                "first_vote_at": min((str(vote["created_at"]) for vote in ballots), default=None),
                "total_votes": len(ballots),
            }
        )
    rows.sort(key=lambda item: item["voter_name"].lower())
    return rows


def vote_timeline(
    votes: list[dict[str, Any]],
    users: dict[str, dict[str, Any]],
    instances: list[dict[str, Any]],
    candidates: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Every ballot in the order it was cast."""
    position_names = {str(row["position_id"]): row.get("position_name", "") for row in instances}
    candidate_names = {str(row["id"]): row["name"] for row in candidates}
    timeline = []
    for vote in sorted(votes, key=lambda item: str(item["created_at"])):
        voter = users.get(str(vote["voter_id"]), {})
        candidate_id = vote.get("candidate_id")
        timeline.append(
            {
                "voter_id": str(vote["voter_id"]),
                "voter_name": voter.get("full_name", ""),
                "voter_email": voter.get("email", ""),
                "position_name": position_names.get(str(vote["position_id"]), ""),
                "candidate_name": (
                    BLANK_LABEL if candidate_id is None else candidate_names.get(str(candidate_id), "")
                ),
                "round": vote["round"],
                "voted_at": vote["created_at"],
            }
        )
    return timeline


def round_history(
    instances: list[dict[str, Any]],
    votes: list[dict[str, Any]],
    candidates: list[dict[str, Any]],
    position_results: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Tally of every round each opened position went through."""
    votes_by_position = group_by(votes, "position_id")
    candidates_by_position = group_by(candidates, "position_id")
    results_by_instance = {row["position_instance_id"]: row for row in position_results}

    history = []
    for instance in instances:
        if instance["status"] == "pending":
            continue
        position_id = str(instance["position_id"])
        running = candidates_by_position.get(position_id, [])
        names = {str(row["id"]): row["name"] for row in running}
        result = results_by_instance.get(str(instance["id"]), {})
        current_round = int(instance["current_round"])

        rounds = []
        for round_number in range(1, current_round + 1):
            tally = tally_votes(
                votes_by_position.get(position_id, []),
                round_number,
                names.keys(),
            )
            # Earlier rounds advanced, so only the current round can carry a winner.
            winner_id = result.get("winner_id") if round_number == current_round else None
            rounds.append(
                {
                    "round": round_number,
                    "blank_votes": tally.blank,
                    "candidates": [
                        {
                            "candidate_id": candidate_id,
                            "name": names.get(candidate_id, ""),
                            "votes": count,
                            "advanced_to_next": round_number < current_round,
                            "is_elected": candidate_id == winner_id,
                        }
                        for candidate_id, count in tally.ranked()
                    ],
                }
            )

        history.append(
            {
                "position_id": position_id,
                "position_name": instance.get("position_name", ""),
                "rounds": rounds,
            }
        )
    return history
