"""Position lifecycle: pending -> open -> completed.

Each transition is a conditional update keyed on the state the caller
validated (``status`` and, where it matters, ``current_round``). If another
request changed the row in between, the update matches nothing and the call
fails with a conflict instead of applying a second transition.
"""

from __future__ import annotations

import logging
from typing import Any

from scrutiny.config import settings
from scrutiny.services.attendance_service import AttendanceService
from scrutiny.services.common import SupabaseService
from scrutiny.services.majority import Advance, Decision, Winner, resolve, top_candidates
from scrutiny.services.tally_service import FINAL_ROUND, TallyService
from scrutiny.utils.errors import AppError, ConflictError, InvalidInputError, InvalidStateError
from scrutiny.utils.time import now_iso
from supabase import Client

logger = logging.getLogger(__name__)

POSITIONS_TABLE = "election_positions"

STATUS_PENDING = "pending"
STATUS_OPEN = "open"
STATUS_COMPLETED = "completed"

DEFAULT_CLOSE_REASON = settings.default_close_reason


def _already_open() -> ConflictError:
    return ConflictError("Another position is already open", code="POSITION_ALREADY_OPEN")


def _lost_race() -> ConflictError:
    return ConflictError(
        "Position was changed by another request, reload and retry",
        code="TRANSITION_CONFLICT",
    )


class PositionService:
    """State machine for the positions of an election."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)
        self.attendance = AttendanceService(client)
        self.tallier = TallyService(client)

    # Reads

    def get(self, position_instance_id: str) -> dict[str, Any]:
        return self.db.select_one(
            POSITIONS_TABLE,
            {"id": position_instance_id},
            not_found_label="Election position",
        )

    def list_for_election(self, election_id: str) -> list[dict[str, Any]]:
        """Return the election's positions in voting order, with catalog names."""
        rows = self.db.select_many(
            POSITIONS_TABLE,
            filters={"election_id": election_id},
            order_by="order_index",
        )
        names = {
            str(row["id"]): row["name"]
            for row in self.db.select_in("positions", "id", [row["position_id"] for row in rows])
        }
        return [{**row, "position_name": names.get(str(row["position_id"]), "")} for row in rows]

    def active(self, election_id: str) -> dict[str, Any] | None:
        """Return the open position of an election, if any."""
        for row in self.list_for_election(election_id):
            if row["status"] == STATUS_OPEN:
                return row
        return None

    def stored_winner(self, instance: dict[str, Any]) -> dict[str, Any] | None:
        rows = self.db.select_many(
            "election_winners",
            filters={
                "election_id": instance["election_id"],
                "position_id": instance["position_id"],
            },
            limit=1,
        )
        return rows[0] if rows else None

    def decision(self, instance: dict[str, Any]) -> Decision:
        """Resolve the current round against the stored attendance snapshot."""
        tally = self.tallier.tally_for_instance(instance)
        snapshot = int(instance.get("present_count_snapshot") or 0)
        return resolve(tally, snapshot, int(instance["current_round"]))

    def check_tie(self, position_instance_id: str) -> dict[str, Any]:
        """Report whether the top of the current round is shared."""
        instance = self.get(position_instance_id)
        round_number = int(instance["current_round"])
        result: dict[str, Any] = {
            "position_instance_id": str(instance["id"]),
            "round": round_number,
            "has_tie": False,
            "tied_candidates": [],
            "requires_resolution": False,
        }

        if instance["status"] == STATUS_PENDING:
            return result

        if instance["status"] == STATUS_COMPLETED:
            result["requires_resolution"] = (
                bool(instance.get("close_reason")) and self.stored_winner(instance) is None
            )
            return result

        tally = self.tallier.tally_for_instance(instance)
        top, best = top_candidates(tally)
        if len(top) < 2:
            return result

        names = {str(row["id"]): row["name"] for row in self.tallier.candidates(instance)}
        result["has_tie"] = True
        result["tied_candidates"] = [
            {"candidate_id": candidate_id, "name": names.get(candidate_id, ""), "votes": best}
            for candidate_id in top
        ]
        result["requires_resolution"] = round_number == FINAL_ROUND
        return result

    # Transitions

    def _ensure_open(self, instance: dict[str, Any], action: str) -> None:
        if instance["status"] != STATUS_OPEN:
            raise InvalidStateError(f"Cannot {action}: position is {instance['status']}")

    def _ensure_election_active(self, election_id: str) -> None:
        election = self.db.select_one(
            "elections",
            {"id": election_id},
            columns="id,is_active",
            not_found_label="Election",
        )
        if not election["is_active"]:
            raise InvalidStateError("Election is not active", code="ELECTION_CLOSED")

    def ensure_candidate(self, instance: dict[str, Any], candidate_id: str) -> None:
        """Raise InvalidInputError unless the candidate runs for this position."""
        candidate_ids = {str(row["id"]) for row in self.tallier.candidates(instance)}
        if str(candidate_id) not in candidate_ids:
            raise InvalidInputError("Candidate is not running for this position")

    def open(self, position_instance_id: str) -> dict[str, Any]:
        """Open the next pending position and freeze its attendance snapshot."""
        instance = self.get(position_instance_id)
        election_id = str(instance["election_id"])
        if instance["status"] != STATUS_PENDING:
            raise InvalidStateError(f"Cannot open: position is {instance['status']}")
        self._ensure_election_active(election_id)

        siblings = self.list_for_election(election_id)
        if any(row["status"] == STATUS_OPEN for row in siblings):
            raise _already_open()

        next_pending = next(row for row in siblings if row["status"] == STATUS_PENDING)
        if str(next_pending["id"]) != str(instance["id"]):
            raise InvalidStateError(
                f"Positions open in order; next is {next_pending['position_name'] or next_pending['id']}"
            )

        snapshot = self.attendance.snapshot(election_id)
        rows = self.db.update(
            POSITIONS_TABLE,
            {"id": instance["id"], "status": STATUS_PENDING},
            {
                "status": STATUS_OPEN,
                "current_round": 1,
                "present_count_snapshot": snapshot,
                "opened_at": now_iso(),
                "closed_at": None,
            },
            conflict=_already_open(),
        )
        if not rows:
            raise _lost_race()

        logger.info(
            "Opened position %s of election %s with %s present",
            instance["id"],
            election_id,
            snapshot,
        )
        return rows[0]

    def advance_round(self, position_instance_id: str) -> dict[str, Any]:
        """Move an open position to its next round when the current one is inconclusive."""
        instance = self.get(position_instance_id)
        self._ensure_open(instance, "advance round")
        round_number = int(instance["current_round"])
        if round_number >= FINAL_ROUND:
            raise InvalidStateError("Final round reached; resolve the tie or force-close")

        decision = self.decision(instance)
        if not isinstance(decision, Advance):
            raise InvalidStateError("Current round already has a winner; complete the position")

        rows = self.db.update(
            POSITIONS_TABLE,
            {"id": instance["id"], "status": STATUS_OPEN, "current_round": round_number},
            {"current_round": decision.next_round},
        )
        if not rows:
            raise _lost_race()

        logger.info("Position %s advanced to round %s", instance["id"], decision.next_round)
        return rows[0]

    def record_winner(
        self,
        instance: dict[str, Any],
        candidate_id: str,
        won_at_round: int,
    ) -> dict[str, Any]:
        return self.db.insert_one(
            "election_winners",
            {
                "election_id": instance["election_id"],
                "position_id": instance["position_id"],
                "candidate_id": candidate_id,
                "won_at_round": won_at_round,
            },
            conflict=ConflictError("Position already has a winner", code="WINNER_EXISTS"),
        )

    def complete(
        self,
        position_instance_id: str,
        candidate_id: str | None = None,
    ) -> dict[str, Any]:
        """Close an open position and record its winner.

        Without ``candidate_id`` the current round must resolve to a winner.
        With it (administrative tie resolution) the chosen candidate wins at
        the current round.
        """
        instance = self.get(position_instance_id)
        self._ensure_open(instance, "complete")
        round_number = int(instance["current_round"])

        if candidate_id is None:
            decision = self.decision(instance)
            if not isinstance(decision, Winner):
                raise InvalidStateError("No winner can be determined for the current round")
            winner_id, won_at_round = decision.candidate_id, decision.round
        else:
            self.ensure_candidate(instance, candidate_id)
            winner_id, won_at_round = str(candidate_id), round_number

        rows = self.db.update(
            POSITIONS_TABLE,
            {"id": instance["id"], "status": STATUS_OPEN, "current_round": round_number},
            {"status": STATUS_COMPLETED, "closed_at": now_iso()},
        )
        if not rows:
            raise _lost_race()

        try:
            winner = self.record_winner(instance, winner_id, won_at_round)
        except AppError:
            self.db.update(
                POSITIONS_TABLE,
                {"id": instance["id"], "status": STATUS_COMPLETED},
                {"status": STATUS_OPEN, "closed_at": None},
            )
            raise

        logger.info(
            "Position %s completed: candidate %s won at round %s",
            instance["id"],
            winner_id,
            won_at_round,
        )
        return {**rows[0], "winner": winner}

    def force_close(
        self,
        position_instance_id: str,
        reason: str | None = None,
        reopen: bool = False,
    ) -> dict[str, Any]:
        """Administrative override: close without a winner, or wipe and reopen."""
        instance = self.get(position_instance_id)
        status = instance["status"]
        close_reason = (reason or "").strip() or DEFAULT_CLOSE_REASON

        if not reopen:
            self._ensure_open(instance, "force-close")
            rows = self.db.update(
                POSITIONS_TABLE,
                {"id": instance["id"], "status": STATUS_OPEN},
                {
                    "status": STATUS_COMPLETED,
                    "closed_at": now_iso(),
                    "close_reason": close_reason,
                },
            )
            if not rows:
                raise _lost_race()
            logger.warning(
                "[ADMIN OVERRIDE] Position %s force-closed at round %s: %s",
                instance["id"],
                instance["current_round"],
                close_reason,
            )
            return rows[0]

        if status not in {STATUS_OPEN, STATUS_COMPLETED}:
            raise InvalidStateError(f"Cannot reopen: position is {status}")
        election_id = str(instance["election_id"])
        self._ensure_election_active(election_id)
        if status == STATUS_COMPLETED:
            if any(row["status"] == STATUS_OPEN for row in self.list_for_election(election_id)):
                raise _already_open()

        payload: dict[str, Any] = {
            "status": STATUS_OPEN,
            "current_round": 1,
            "closed_at": None,
            "close_reason": None,
        }
        if instance.get("present_count_snapshot") is None:
            payload["present_count_snapshot"] = self.attendance.snapshot(election_id)
            payload["opened_at"] = instance.get("opened_at") or now_iso()

        rows = self.db.update(
            POSITIONS_TABLE,
            {"id": instance["id"], "status": status},
            payload,
            conflict=_already_open(),
        )
        if not rows:
            raise _lost_race()

        scope = {"election_id": election_id, "position_id": instance["position_id"]}
        try:
            removed_votes = self.db.delete("votes", scope)
            self.db.delete("election_winners", scope)
        except AppError:
            self.db.update(
                POSITIONS_TABLE,
                {"id": instance["id"], "status": STATUS_OPEN, "current_round": 1},
                {column: instance.get(column) for column in payload},
            )
            raise

        logger.warning(
            "[ADMIN OVERRIDE] Position %s reopened (%s votes cleared, candidates kept): %s",
            instance["id"],
            len(removed_votes),
            close_reason,
        )
        return rows[0]
