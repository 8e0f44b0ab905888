"""Results and audit endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_db_client, require_admin
from scrutiny.services.audit_service import AuditService
from scrutiny.services.results_service import ResultsService
from supabase import Client

router = APIRouter()


@router.get("/latest")
def latest_results(client: Client = Depends(get_db_client)) -> dict:
    """Results of the most recently finalized election (public)."""
    return ResultsService(client).latest()


@router.get("/{election_id}")
def election_results(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Per-position results of an election (public)."""
    return ResultsService(client).get_results(election_id)


@router.get("/{election_id}/audit")
def election_audit(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Full audit data: results, attendance, vote timeline and round history."""
    return AuditService(client).audit(election_id)
