"""Candidate nomination for election positions."""

from __future__ import annotations

from typing import Any

from scrutiny.services.common import SupabaseService
from scrutiny.utils.errors import ConflictError, InvalidStateError, NotFoundError
from supabase import Client


class CandidateService:
    """Nominate members and list who runs for what."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def _instance(self, position_id: str, election_id: str) -> dict[str, Any]:
        rows = self.db.select_many(
            "election_positions",
            filters={"election_id": election_id, "position_id": position_id},
            limit=1,
        )
        if not rows:
            raise NotFoundError("Position in this election")
        return rows[0]

    def _payload(self, user_id: str, position_id: str, election_id: str) -> dict[str, Any]:
        """Validate one nomination and build its candidate row."""
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        if not election["is_active"]:
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")

        instance = self._instance(position_id, election_id)
        if instance["status"] == "completed":
            raise InvalidStateError("Position is already decided")

        member = self.db.select_one("users", {"id": user_id}, not_found_label="Member")
        return {
            "name": member["full_name"],
            "email": member["email"],
            "user_id": user_id,
            "position_id": position_id,
            "election_id": election_id,
        }

    def add(self, user_id: str, position_id: str, election_id: str) -> dict[str, Any]:
        """Nominate one member; the candidate carries the member's name and email."""
        payload = self._payload(user_id, position_id, election_id)
        return self.db.insert_one(
            "candidates",
            payload,
            conflict=ConflictError(
                f"{payload['name']} is already a candidate for this position",
                code="DUPLICATE_CANDIDATE",
            ),
        )

    def add_many(self, nominations: list[dict[str, str]]) -> list[dict[str, Any]]:
        """Nominate several members in one insert; any invalid nomination rejects the batch."""
        payloads = [
            self._payload(
                user_id=nomination["user_id"],
                position_id=nomination["position_id"],
                election_id=nomination["election_id"],
            )
            for nomination in nominations
        ]
        return self.db.insert_many(
            "candidates",
            payloads,
            conflict=ConflictError(
                "A nominated member is already a candidate for this position",
                code="DUPLICATE_CANDIDATE",
            ),
        )

    def list_for_position(self, position_id: str, election_id: str) -> list[dict[str, Any]]:
        return self.db.select_many(
            "candidates",
            filters={"position_id": position_id, "election_id": election_id},
            order_by="name",
        )

    def list_for_election(self, election_id: str) -> list[dict[str, Any]]:
        """Return every candidate of an election with its position name."""
        rows = self.db.select_many(
            "candidates",
            filters={"election_id": election_id},
            order_by="name",
        )
        names = {
            str(row["id"]): row["name"]
            for row in self.db.select_in("positions", "id", [row["position_id"] for row in rows])
        }
        return [{**row, "position_name": names.get(str(row["position_id"]), "")} for row in rows]
