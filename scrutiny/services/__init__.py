"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "AttendanceService": "scrutiny.services.attendance_service",
    "AuditService": "scrutiny.services.audit_service",
    "CandidateService": "scrutiny.services.candidate_service",
    "ElectionService": "scrutiny.services.election_service",
    "PositionService": "scrutiny.services.position_service",
    "ResultsService": "scrutiny.services.results_service",
    "SupabaseService": "scrutiny.services.common",
    "TallyService": "scrutiny.services.tally_service",
    "VoteService": "scrutiny.services.vote_service",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
