"""Election endpoints: lifecycle, position sequencing and attendance."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from scrutiny.dependencies import get_current_user, get_db_client, require_admin
from scrutiny.schemas.election import AttendanceUpdate, ElectionCreate
from scrutiny.services.attendance_service import AttendanceService
from scrutiny.services.election_service import ElectionService
from scrutiny.services.position_service import PositionService
from scrutiny.utils.errors import NotFoundError
from supabase import Client

router = APIRouter()


@router.get("/active")
def get_active_election(client: Client = Depends(get_db_client)) -> dict:
    """Return the active election (public)."""
    election = ElectionService(client).active()
    if election is None:
        raise NotFoundError("Active election")
    return {"election": election}


@router.get("/history")
def election_history(
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """List every election, newest first."""
    return {"elections": ElectionService(client).history()}


@router.post("", status_code=201)
def create_election(
    payload: ElectionCreate,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create an election with its ordered positions."""
    election = ElectionService(client).create(name=payload.name, position_ids=payload.position_ids)
    return {"election": election}


@router.get("/{election_id}")
def get_election(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Return one election with its positions."""
    return {"election": ElectionService(client).detail(election_id)}


@router.patch("/{election_id}/close")
def close_election(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Stop voting without finalizing the election."""
    return {"election": ElectionService(client).close(election_id)}


@router.post("/{election_id}/finalize")
def finalize_election(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Finalize an election once all positions are decided."""
    return {"election": ElectionService(client).finalize(election_id)}


@router.get("/{election_id}/winners")
def election_winners(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Recorded winners of an election (public)."""
    return {"winners": ElectionService(client).winners(election_id)}


@router.get("/{election_id}/positions")
def list_positions(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """List the election's positions in voting order."""
    return {"positions": PositionService(client).list_for_election(election_id)}


@router.get("/{election_id}/positions/active")
def get_active_position(election_id: str, client: Client = Depends(get_db_client)) -> dict:
    """Return the position currently open for voting (public)."""
    position = PositionService(client).active(election_id)
    if position is None:
        raise NotFoundError("Open position")
    return {"position": position}


@router.post("/{election_id}/positions/open-next")
def open_next_position(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Open the next pending position; ``position`` is null when none remain."""
    position = ElectionService(client).open_next(election_id)
    return {"position": position, "opened": position is not None}


@router.post("/{election_id}/positions/{position_id}/open")
def open_position(
    election_id: str,
    position_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Open a specific position (only allowed when it is the next one)."""
    return {"position": ElectionService(client).open_position(election_id, position_id)}


@router.get("/{election_id}/attendance")
def list_attendance(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Attendance list, excluding members already elected."""
    return {"attendance": AttendanceService(client).list_attendance(election_id)}


@router.post("/{election_id}/attendance/initialize")
def initialize_attendance(
    election_id: str,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Create absent rows for every active member."""
    return {"created": AttendanceService(client).initialize(election_id)}


@router.patch("/{election_id}/attendance/{member_id}")
def update_attendance(
    election_id: str,
    member_id: str,
    payload: AttendanceUpdate,
    _: Any = Depends(require_admin),
    client: Client = Depends(get_db_client),
) -> dict:
    """Mark a member present or absent."""
    entry = AttendanceService(client).set_presence(election_id, member_id, payload.is_present)
    return {"attendance": entry}


@router.get("/{election_id}/attendance/count")
def attendance_count(
    election_id: str,
    _: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> dict:
    """Live present count."""
    return {"present_count": AttendanceService(client).present_count(election_id)}
