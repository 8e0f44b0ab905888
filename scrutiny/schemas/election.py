"""Election, position and ballot schemas."""

from pydantic import BaseModel, Field


class ElectionCreate(BaseModel):
    """Request body for creating an election.

    ``position_ids`` fixes the voting order; omit it to use every catalog
    position in name order.
    """

    name: str = Field(..., min_length=1)
    position_ids: list[str] | None = None


class CatalogPositionCreate(BaseModel):
    """Request body for adding a position to the catalog."""

    name: str = Field(..., min_length=1, max_length=100)


class VoteCreate(BaseModel):
    """Request body for casting a ballot; a null candidate is a blank ballot."""

    election_id: str
    position_id: str
    round: int = Field(..., ge=1, le=3)
    candidate_id: str | None


class ResolveTieRequest(BaseModel):
    """Administrator's pick for a tied position."""

    candidate_id: str


class ForceCloseRequest(BaseModel):
    """Administrative override for a stuck or contested position."""

    reason: str = ""
    reopen: bool = False


class AttendanceUpdate(BaseModel):
    """Request body for marking a member present or absent."""

    is_present: bool


class CandidateCreate(BaseModel):
    """Nomination of a member for a position of an election."""

    user_id: str
    position_id: str
    election_id: str


class CandidateBatchCreate(BaseModel):
    """Several nominations at once."""

    candidates: list[CandidateCreate] = Field(..., min_length=1)
