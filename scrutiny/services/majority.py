"""Round decision rules.

Rounds 1 and 2 need an absolute majority of the attendance snapshot taken when
the position opened. Round 3 is decided by plurality; a tie at the top of the
final round is left to an administrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from scrutiny.services.tally_service import FINAL_ROUND, ROUNDS, Tally


@dataclass(frozen=True)
class Winner:
    candidate_id: str
    round: int


@dataclass(frozen=True)
class Tie:
    candidate_ids: tuple[str, ...]
    round: int


@dataclass(frozen=True)
class Advance:
    next_round: int


@dataclass(frozen=True)
class Unresolved:
    """Final round with no candidate votes: awaits administrative action."""

    round: int


Decision = Winner | Tie | Advance | Unresolved


def majority_threshold(round_number: int, snapshot: int) -> int:
    """Votes needed to win ``round_number`` given the stored attendance snapshot."""
    if round_number == FINAL_ROUND:
        return 1
    return snapshot // 2 + 1


def top_candidates(tally: Tally) -> tuple[list[str], int]:
    """Return the candidates sharing the highest non-zero count, and that count."""
    voted = {candidate_id: votes for candidate_id, votes in tally.per_candidate.items() if votes > 0}
    if not voted:
        return [], 0
    best = max(voted.values())
    return sorted(candidate_id for candidate_id, votes in voted.items() if votes == best), best


def resolve(tally: Tally, snapshot: int, round_number: int) -> Decision:
    """Decide the outcome of ``round_number`` from its tally."""
    if round_number not in ROUNDS:
        raise ValueError(f"round must be one of {ROUNDS}, got {round_number}")

    top, best = top_candidates(tally)

    if round_number < FINAL_ROUND:
        if len(top) == 1 and best >= majority_threshold(round_number, snapshot):
            return Winner(top[0], round_number)
        return Advance(round_number + 1)

    if len(top) > 1:
        return Tie(tuple(top), round_number)
    if top:
        return Winner(top[0], round_number)
    return Unresolved(round_number)


@dataclass(frozen=True)
class Outcome:
    """A live decision reconciled against the stored winner record."""

    decision: Decision | None
    winner_id: str | None = None
    won_at_round: int | None = None
    recorded: bool = False


def reconcile(stored_winner: dict[str, Any] | None, decision: Decision | None) -> Outcome:
    """Apply the precedence rule: a recorded winner beats any live recomputation."""
    if stored_winner is not None:
        return Outcome(
            decision=decision,
            winner_id=str(stored_winner["candidate_id"]),
            won_at_round=int(stored_winner["won_at_round"]),
            recorded=True,
        )
    if isinstance(decision, Winner):
        return Outcome(decision=decision, winner_id=decision.candidate_id, won_at_round=decision.round)
    return Outcome(decision=decision)
