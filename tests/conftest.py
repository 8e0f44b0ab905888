"""Pytest fixtures for backend tests."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient


def _set_default_env() -> None:
    os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
    os.environ.setdefault("SUPABASE_ANON_KEY", "anon-key")
    os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")


# Settings are read at import time by scrutiny.config.
_set_default_env()

from fake_supabase import FakeSupabase  # noqa: E402


@dataclass
class SeededElection:
    """Ids of an election seeded straight into the fake database."""

    db: FakeSupabase
    election_id: str
    admin_id: str
    members: list[str] = field(default_factory=list)
    positions: list[str] = field(default_factory=list)
    instances: list[str] = field(default_factory=list)
    candidates: dict[str, list[str]] = field(default_factory=dict)

    def candidate(self, position_index: int, candidate_index: int) -> str:
        return self.candidates[self.positions[position_index]][candidate_index]

    def instance(self, position_index: int = 0) -> dict:
        return next(
            row
            for row in self.db.tables["election_positions"]
            if row["id"] == self.instances[position_index]
        )


def _insert(db: FakeSupabase, table: str, payload: dict) -> dict:
    return db.table(table).insert(payload).execute().data[0]


def seed_election(
    db: FakeSupabase,
    member_count: int = 5,
    present: int | None = None,
    position_names: tuple[str, ...] = ("President", "Secretary"),
    candidates_per_position: int = 2,
) -> SeededElection:
    """Create members, catalog positions, an active election and its candidates.

    Members are named ``Member 00``, ``Member 01``... and the first
    ``present`` of them are marked present. Candidates of every position are
    the first members, so candidate names sort the same way as member names.
    """
    present = member_count if present is None else present
    admin = _insert(
        db,
        "users",
        {"full_name": "Admin", "email": "admin@example.com", "is_admin": True},
    )
    members = [
        _insert(db, "users", {"full_name": f"Member {index:02d}", "email": f"m{index}@example.com"})
        for index in range(member_count)
    ]
    catalog = [_insert(db, "positions", {"name": name}) for name in position_names]
    election = _insert(db, "elections", {"name": "Annual election"})
    instances = [
        _insert(
            db,
            "election_positions",
            {"election_id": election["id"], "position_id": position["id"], "order_index": index},
        )
        for index, position in enumerate(catalog)
    ]
    for index, member in enumerate(members):
        _insert(
            db,
            "election_attendance",
            {"election_id": election["id"], "member_id": member["id"], "is_present": index < present},
        )

    candidates: dict[str, list[str]] = {}
    for position in catalog:
        candidates[position["id"]] = [
            _insert(
                db,
                "candidates",
                {
                    "name": member["full_name"],
                    "email": member["email"],
                    "user_id": member["id"],
                    "position_id": position["id"],
                    "election_id": election["id"],
                },
            )["id"]
            for member in members[:candidates_per_position]
        ]

    return SeededElection(
        db=db,
        election_id=election["id"],
        admin_id=admin["id"],
        members=[member["id"] for member in members],
        positions=[position["id"] for position in catalog],
        instances=[instance["id"] for instance in instances],
        candidates=candidates,
    )


def cast_ballots(
    seeded: SeededElection,
    choices: list[str | None],
    position_index: int = 0,
    round_number: int = 1,
    first_voter: int = 0,
) -> None:
    """Cast one ballot per choice, voters taken in member order."""
    from scrutiny.services.vote_service import VoteService

    votes = VoteService(seeded.db)
    for offset, candidate_id in enumerate(choices):
        votes.cast(
            voter_id=seeded.members[first_voter + offset],
            position_id=seeded.positions[position_index],
            election_id=seeded.election_id,
            round_number=round_number,
            candidate_id=candidate_id,
        )


@pytest.fixture
def db() -> FakeSupabase:
    """Empty in-memory database."""
    return FakeSupabase()


@pytest.fixture
def seeded(db: FakeSupabase) -> SeededElection:
    """Active election with five present members and two positions."""
    return seed_election(db)


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a FastAPI test client."""
    from scrutiny.main import app

    return TestClient(app)


def auth(user_id: str) -> dict[str, str]:
    """Authorization header accepted by the ``api`` client."""
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def api(db: FakeSupabase):
    """Test client wired to the fake database; the bearer token is the user id."""
    from fastapi import Header

    from scrutiny.dependencies import get_current_user, get_db_client
    from scrutiny.main import app
    from scrutiny.utils.errors import UnauthorizedError

    def _current_user(authorization: str = Header(None)) -> SimpleNamespace:
        if not authorization or not authorization.startswith("Bearer "):
            raise UnauthorizedError("Missing authorization header")
        return SimpleNamespace(id=authorization.split(" ", 1)[1])

    app.dependency_overrides[get_db_client] = lambda: db
    app.dependency_overrides[get_current_user] = _current_user
    yield TestClient(app)
    app.dependency_overrides.clear()
