"""Ballot endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_current_user, get_current_user_id, get_db_client
from scrutiny.schemas.election import VoteCreate
from scrutiny.services.vote_service import VoteService
from supabase import Client

router = APIRouter()


@router.post("", status_code=201)
def cast_vote(
    payload: VoteCreate,
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Cast the caller's ballot for the open position's active round."""
    vote = VoteService(client).cast(
        voter_id=get_current_user_id(user),
        position_id=payload.position_id,
        election_id=payload.election_id,
        round_number=payload.round,
        candidate_id=payload.candidate_id,
    )
    return {"vote_id": vote["id"]}
