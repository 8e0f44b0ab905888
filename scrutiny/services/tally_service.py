"""Per-round vote aggregation."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from scrutiny.services.common import SupabaseService
from scrutiny.utils.errors import InvalidInputError
from supabase import Client

ROUNDS = (1, 2, 3)
FINAL_ROUND = ROUNDS[-1]


@dataclass(frozen=True)
class CandidateBallot:
    """A ballot naming one candidate."""

    candidate_id: str


@dataclass(frozen=True)
class BlankBallot:
    """An explicit blank ballot."""


Ballot = CandidateBallot | BlankBallot


def ballot_from_row(row: dict[str, Any]) -> Ballot:
    """Read the ballot variant stored on a vote row (null candidate = blank)."""
    candidate_id = row.get("candidate_id")
    if candidate_id is None:
        return BlankBallot()
    return CandidateBallot(str(candidate_id))


@dataclass(frozen=True)
class Tally:
    """Vote counts for one (position, round) pair."""

    round: int
    per_candidate: dict[str, int] = field(default_factory=dict)
    blank: int = 0
    distinct_voters: int = 0

    @property
    def total_votes(self) -> int:
        return sum(self.per_candidate.values()) + self.blank

    def ranked(self) -> list[tuple[str, int]]:
        """Return (candidate_id, votes) pairs, most votes first."""
        return sorted(self.per_candidate.items(), key=lambda item: (-item[1], item[0]))


def tally_votes(
    rows: Iterable[dict[str, Any]],
    round_number: int,
    candidate_ids: Iterable[str] = (),
) -> Tally:
    """Aggregate vote rows of ``round_number`` into a :class:`Tally`.

    Every id in ``candidate_ids`` is present in the result, with zero when
    nobody voted for it. Rows from other rounds are ignored.
    """
    counts: Counter[str] = Counter({str(candidate_id): 0 for candidate_id in candidate_ids})
    blank = 0
    voters: set[str] = set()

    for row in rows:
        if int(row["round"]) != round_number:
            continue
        voters.add(str(row["voter_id"]))
        ballot = ballot_from_row(row)
        if isinstance(ballot, BlankBallot):
            blank += 1
        else:
            counts[ballot.candidate_id] += 1

    return Tally(
        round=round_number,
        per_candidate=dict(counts),
        blank=blank,
        distinct_voters=len(voters),
    )


class TallyService:
    """Recompute round tallies straight from committed votes."""

    def __init__(self, client: Client) -> None:
        self.db = SupabaseService(client)

    def candidates(self, instance: dict[str, Any]) -> list[dict[str, Any]]:
        return self.db.select_many(
            "candidates",
            filters={
                "position_id": instance["position_id"],
                "election_id": instance["election_id"],
            },
            order_by="name",
        )

    def round_votes(self, instance: dict[str, Any], round_number: int) -> list[dict[str, Any]]:
        """Read every vote of one round in a single query."""
        return self.db.select_many(
            "votes",
            filters={
                "election_id": instance["election_id"],
                "position_id": instance["position_id"],
                "round": round_number,
            },
            columns="voter_id,candidate_id,round",
        )

    def tally(self, position_instance_id: str, round_number: int | None = None) -> Tally:
        """Tally one round of an election position (current round by default)."""
        instance = self.db.select_one(
            "election_positions",
            {"id": position_instance_id},
            not_found_label="Election position",
        )
        return self.tally_for_instance(instance, round_number)

    def tally_for_instance(
        self,
        instance: dict[str, Any],
        round_number: int | None = None,
    ) -> Tally:
        target_round = round_number if round_number is not None else int(instance["current_round"])
        if target_round not in ROUNDS:
            raise InvalidInputError(f"Round must be one of {ROUNDS}")

        candidate_ids = [str(row["id"]) for row in self.candidates(instance)]
        return tally_votes(self.round_votes(instance, target_round), target_round, candidate_ids)
