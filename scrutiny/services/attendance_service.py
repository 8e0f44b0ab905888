"""Election attendance and the per-position attendance snapshot."""

from __future__ import annotations

import logging
from typing import Any

from scrutiny.services.common import SupabaseService
from scrutiny.utils.errors import InvalidStateError
from scrutiny.utils.time import now_iso
from supabase import Client

logger = logging.getLogger(__name__)


class AttendanceService:
    """Track which members are present at an election sitting."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def snapshot(self, election_id: str) -> int:
        """Count members currently marked present.

        Only position transitions call this; the result is stored on the
        position and never recomputed.
        """
        return self.present_count(election_id)

    def present_count(self, election_id: str) -> int:
        """Live present count (informational, never used for thresholds)."""
        return self.db.count(
            "election_attendance",
            filters={"election_id": election_id, "is_present": True},
        )

    def is_present(self, election_id: str, member_id: str) -> bool:
        rows = self.db.select_many(
            "election_attendance",
            filters={"election_id": election_id, "member_id": member_id},
            columns="is_present",
            limit=1,
        )
        return bool(rows and rows[0].get("is_present"))

    def _active_election(self, election_id: str) -> dict[str, Any]:
        election = self.db.select_one("elections", {"id": election_id}, not_found_label="Election")
        if not election["is_active"]:
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")
        return election

    def initialize(self, election_id: str) -> int:
        """Create an absent row for every active member without one.

        Returns how many rows were created.
        """
        self._active_election(election_id)
        members = self.db.select_many(
            "users",
            filters={"is_member": True, "active_member": True},
            columns="id",
        )
        existing = self.db.select_many(
            "election_attendance",
            filters={"election_id": election_id},
            columns="member_id",
        )
        known = {str(row["member_id"]) for row in existing}
        payloads = [
            {"election_id": election_id, "member_id": str(member["id"]), "is_present": False}
            for member in members
            if str(member["id"]) not in known
        ]
        self.db.insert_many("election_attendance", payloads)
        logger.info("Initialized attendance for election %s (%s new rows)", election_id, len(payloads))
        return len(payloads)

    def set_presence(self, election_id: str, member_id: str, is_present: bool) -> dict[str, Any]:
        """Mark one member present or absent."""
        self._active_election(election_id)
        self.db.select_one("users", {"id": member_id}, columns="id", not_found_label="Member")

        payload = {"is_present": is_present, "marked_at": now_iso()}
        rows = self.db.update(
            "election_attendance",
            {"election_id": election_id, "member_id": member_id},
            payload,
        )
        if rows:
            return rows[0]
        return self.db.insert_one(
            "election_attendance",
            {"election_id": election_id, "member_id": member_id, **payload},
        )

    def list_attendance(self, election_id: str) -> list[dict[str, Any]]:
        """Return attendance rows with member details, hiding elected members."""
        self.db.select_one("elections", {"id": election_id}, columns="id", not_found_label="Election")
        rows = self.db.select_many("election_attendance", filters={"election_id": election_id})

        winners = self.db.select_many(
            "election_winners",
            filters={"election_id": election_id},
            columns="candidate_id",
        )
        candidates = self.db.select_in(
            "candidates",
            "id",
            [row["candidate_id"] for row in winners],
            columns="user_id",
        )
        elected = {str(candidate["user_id"]) for candidate in candidates}

        users = self.db.get_users_map(row["member_id"] for row in rows)
        result: list[dict[str, Any]] = []
        for row in rows:
            member_id = str(row["member_id"])
            if member_id in elected:
                continue
            member = users.get(member_id) or {}
            payload = dict(row)
            payload["member_name"] = member.get("full_name", "")
            payload["member_email"] = member.get("email", "")
            result.append(payload)

        result.sort(key=lambda item: item["member_name"].lower())
        return result
