"""Position scrutiny endpoints (administrators only)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_db_client, require_admin
from scrutiny.schemas.election import ForceCloseRequest, ResolveTieRequest
from scrutiny.services.election_service import ElectionService
from scrutiny.services.position_service import PositionService
from scrutiny.services.tally_service import TallyService
from supabase import Client

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/{position_instance_id}/tally")
def get_tally(
    position_instance_id: str,
    round: int | None = None,
    client: Client = Depends(get_db_client),
) -> dict[str, Any]:
    """Vote counts of one round (current round by default)."""
    tally = TallyService(client).tally(position_instance_id, round)
    return {
        "round": tally.round,
        "per_candidate": tally.per_candidate,
        "blank": tally.blank,
        "distinct_voters": tally.distinct_voters,
    }


@router.post("/{position_instance_id}/advance")
def advance_scrutiny(position_instance_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Move an inconclusive position to its next round."""
    position = PositionService(client).advance_round(position_instance_id)
    return {"position": position, "round": position["current_round"]}


@router.get("/{position_instance_id}/tie")
def check_tie(position_instance_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Report whether the current round's lead is shared."""
    return PositionService(client).check_tie(position_instance_id)


@router.post("/{position_instance_id}/resolve-tie")
def resolve_tie(
    position_instance_id: str,
    payload: ResolveTieRequest,
    client: Client = Depends(get_db_client),
) -> dict:
    """Record the administrator's pick for a tied position."""
    position = ElectionService(client).resolve_tie(position_instance_id, payload.candidate_id)
    return {"position": position}


@router.post("/{position_instance_id}/complete")
def complete_position(position_instance_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Close the position when its current round has a winner."""
    return {"position": ElectionService(client).complete_position(position_instance_id)}


@router.post("/{position_instance_id}/force-close")
def force_close_position(
    position_instance_id: str,
    payload: ForceCloseRequest,
    client: Client = Depends(get_db_client),
) -> dict:
    """Administrative override: close without a winner or wipe and reopen."""
    position = PositionService(client).force_close(
        position_instance_id,
        reason=payload.reason,
        reopen=payload.reopen,
    )
    return {"position": position}
