"""Election creation, position sequencing, tie resolution and finalization."""

from __future__ import annotations

import logging
from typing import Any

from scrutiny.services.common import SupabaseService
from scrutiny.services.majority import Tie
from scrutiny.services.position_service import (
    STATUS_COMPLETED,
    STATUS_OPEN,
    STATUS_PENDING,
    PositionService,
)
from scrutiny.utils.errors import (
    AppError,
    ConflictError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
)
from scrutiny.utils.time import now_iso
from supabase import Client

logger = logging.getLogger(__name__)


class ElectionService:
    """Sequence an election's positions and gate its finalization."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.positions = PositionService(client)

    def _hydrate_election(self, election: dict[str, Any]) -> dict[str, Any]:
        payload = dict(election)
        payload["positions"] = self.positions.list_for_election(str(election["id"]))
        return payload

    def get(self, election_id: str) -> dict[str, Any]:
        return self.db.select_one("elections", {"id": election_id}, not_found_label="Election")

    def detail(self, election_id: str) -> dict[str, Any]:
        return self._hydrate_election(self.get(election_id))

    def active(self) -> dict[str, Any] | None:
        """Return the active election if one exists."""
        rows = self.db.select_many(
            "elections",
            filters={"is_active": True},
            order_by="created_at",
            descending=True,
            limit=1,
        )
        if not rows:
            return None
        return self._hydrate_election(rows[0])

    def history(self) -> list[dict[str, Any]]:
        return self.db.select_many("elections", order_by="created_at", descending=True)

    # Catalog

    def list_catalog(self) -> list[dict[str, Any]]:
        return self.db.select_many("positions", order_by="name")

    def create_catalog_position(self, name: str) -> dict[str, Any]:
        clean_name = name.strip()
        if not clean_name:
            raise InvalidInputError("Position name is required")
        return self.db.insert_one(
            "positions",
            {"name": clean_name},
            conflict=ConflictError(f"Position {clean_name} already exists"),
        )

    # Lifecycle

    def create(self, name: str, position_ids: list[str] | None = None) -> dict[str, Any]:
        """Create an active election and its ordered position sequence.

        Without ``position_ids`` every catalog position is used, in name order.
        """
        clean_name = name.strip()
        if not clean_name:
            raise InvalidInputError("Election name is required")

        if self.active():
            raise ConflictError("An active election already exists")

        catalog = {str(row["id"]): row for row in self.list_catalog()}
        if position_ids is None:
            ordered = list(catalog)
        else:
            ordered = [str(position_id) for position_id in position_ids]
            if len(set(ordered)) != len(ordered):
                raise InvalidInputError("A position can appear only once in an election")
            for position_id in ordered:
                if position_id not in catalog:
                    raise NotFoundError(f"Position {position_id}")
        if not ordered:
            raise InvalidInputError("An election needs at least one position")

        election = self.db.insert_one("elections", {"name": clean_name, "is_active": True})
        try:
            self.db.insert_many(
                "election_positions",
                [
                    {
                        "election_id": election["id"],
                        "position_id": position_id,
                        "order_index": index,
                        "status": STATUS_PENDING,
                        "current_round": 1,
                    }
                    for index, position_id in enumerate(ordered)
                ],
            )
        except AppError:
            self.db.delete("elections", {"id": election["id"]})
            raise
        logger.info("Created election %s with %s positions", election["id"], len(ordered))
        return self._hydrate_election(election)

    def open_next(self, election_id: str) -> dict[str, Any] | None:
        """Open the lowest-ordered pending position; None when all have been opened."""
        election = self.get(election_id)
        if not election["is_active"]:
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")

        next_pending = next(
            (
                row
                for row in self.positions.list_for_election(election_id)
                if row["status"] == STATUS_PENDING
            ),
            None,
        )
        if next_pending is None:
            return None
        return self.positions.open(str(next_pending["id"]))

    def open_position(self, election_id: str, position_id: str) -> dict[str, Any]:
        """Open a specific catalog position of the election (must be the next one)."""
        for row in self.positions.list_for_election(election_id):
            if str(row["position_id"]) == str(position_id):
                return self.positions.open(str(row["id"]))
        raise NotFoundError("Position in this election")

    def complete_position(self, position_instance_id: str) -> dict[str, Any]:
        """Close the open position when its current round produced a winner."""
        return self.positions.complete(position_instance_id)

    def resolve_tie(self, position_instance_id: str, candidate_id: str) -> dict[str, Any]:
        """Record an administrator's pick for a tied or force-closed position."""
        instance = self.positions.get(position_instance_id)
        election = self.get(str(instance["election_id"]))
        if not election["is_active"]:
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")

        if instance["status"] == STATUS_OPEN:
            decision = self.positions.decision(instance)
            if not isinstance(decision, Tie):
                raise InvalidStateError("Position has no tie to resolve")
            if str(candidate_id) not in decision.candidate_ids:
                raise InvalidInputError("Candidate is not among the tied candidates")
            logger.info(
                "Tie on position %s resolved for candidate %s", instance["id"], candidate_id
            )
            return self.positions.complete(str(instance["id"]), candidate_id=str(candidate_id))

        if (
            instance["status"] == STATUS_COMPLETED
            and instance.get("close_reason")
            and self.positions.stored_winner(instance) is None
        ):
            self.positions.ensure_candidate(instance, candidate_id)
            winner = self.positions.record_winner(
                instance, str(candidate_id), int(instance["current_round"])
            )
            logger.info(
                "Winner %s recorded for force-closed position %s", candidate_id, instance["id"]
            )
            return {**instance, "winner": winner}

        raise InvalidStateError("Position has no tie to resolve")

    def close(self, election_id: str) -> dict[str, Any]:
        """Stop accepting ballots; the election stays active until finalized."""
        election = self.get(election_id)
        if not election["is_active"] or election.get("closed_at"):
            raise InvalidStateError("Election is already closed", code="ELECTION_CLOSED")

        rows = self.db.update(
            "elections",
            {"id": election_id, "is_active": True},
            {"closed_at": now_iso()},
        )
        if not rows:
            raise ConflictError("Election was finalized by another request")

        logger.info("Election %s closed for voting", election_id)
        return rows[0]

    def finalize(self, election_id: str) -> dict[str, Any]:
        """Close the election once every position is completed."""
        election = self.get(election_id)
        if not election["is_active"]:
            raise InvalidStateError("Election is already finalized", code="ELECTION_CLOSED")

        positions = self.positions.list_for_election(election_id)
        undecided = [row for row in positions if row["status"] != STATUS_COMPLETED]
        if undecided:
            raise InvalidStateError(
                f"{len(undecided)} positions still undecided",
                code="POSITIONS_UNDECIDED",
            )

        rows = self.db.update(
            "elections",
            {"id": election_id, "is_active": True},
            {"is_active": False, "closed_at": now_iso()},
        )
        if not rows:
            raise ConflictError("Election was finalized by another request")

        logger.info("Election %s finalized", election_id)
        return self._hydrate_election(rows[0])

    def winners(self, election_id: str) -> list[dict[str, Any]]:
        """Return the recorded winners with member and position details."""
        self.get(election_id)
        rows = self.db.select_many("election_winners", filters={"election_id": election_id})
        candidates = {
            str(row["id"]): row
            for row in self.db.select_in("candidates", "id", [row["candidate_id"] for row in rows])
        }
        names = {
            str(row["id"]): row["name"]
            for row in self.db.select_in("positions", "id", [row["position_id"] for row in rows])
        }

        result: list[dict[str, Any]] = []
        for row in rows:
            candidate = candidates.get(str(row["candidate_id"])) or {}
            result.append(
                {
                    "position_id": str(row["position_id"]),
                    "position_name": names.get(str(row["position_id"]), ""),
                    "candidate_id": str(row["candidate_id"]),
                    "candidate_name": candidate.get("name", ""),
                    "user_id": candidate.get("user_id"),
                    "won_at_round": row["won_at_round"],
                }
            )
        return result
