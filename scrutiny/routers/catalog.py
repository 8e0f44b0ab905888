"""Position catalog endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_db_client, require_admin
from scrutiny.schemas.election import CatalogPositionCreate
from scrutiny.services.election_service import ElectionService
from supabase import Client

router = APIRouter()


@router.get("")
def list_catalog(client: Client = Depends(get_db_client)) -> dict:
    """Every position an election can include."""
    return {"positions": ElectionService(client).list_catalog()}


@router.post("", status_code=201)
def create_catalog_position(
    payload: CatalogPositionCreate,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Add a named position to the catalog."""
    return {"position": ElectionService(client).create_catalog_position(payload.name)}
