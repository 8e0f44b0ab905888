"""API router package."""

from scrutiny.routers import (
    candidates,
    catalog,
    elections,
    positions,
    results,
    votes,
)

__all__ = [
    "candidates",
    "catalog",
    "elections",
    "positions",
    "results",
    "votes",
]
