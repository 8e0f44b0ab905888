"""Candidate endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_current_user, get_db_client, require_admin
from scrutiny.schemas.election import CandidateBatchCreate, CandidateCreate
from scrutiny.services.candidate_service import CandidateService
from supabase import Client

router = APIRouter()


@router.post("", status_code=201)
def add_candidate(
    payload: CandidateCreate,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Nominate a member for a position."""
    candidate = CandidateService(client).add(
        user_id=payload.user_id,
        position_id=payload.position_id,
        election_id=payload.election_id,
    )
    return {"candidate": candidate}


@router.post("/batch", status_code=201)
def add_candidates(
    payload: CandidateBatchCreate,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Nominate several members at once."""
    candidates = CandidateService(client).add_many(
        [nomination.model_dump() for nomination in payload.candidates]
    )
    return {"candidates": candidates}


@router.get("/elections/{election_id}")
def list_election_candidates(
    election_id: str,
    _: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Every candidate of an election."""
    return {"candidates": CandidateService(client).list_for_election(election_id)}


@router.get("/elections/{election_id}/positions/{position_id}")
def list_position_candidates(
    election_id: str,
    position_id: str,
    _: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Candidates running for one position."""
    return {"candidates": CandidateService(client).list_for_position(position_id, election_id)}
