"""In-memory stand-in for the Supabase query builder used by the services.

Only the subset the services call is implemented: ``select`` / ``insert`` /
``update`` / ``delete`` with ``eq``, ``in_``, ``order`` and ``limit``. Unique
constraints from ``sql/schema.sql`` are enforced on every write and
reported as ``postgrest.APIError`` with code ``23505``, the same way PostgREST
reports them.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from postgrest import APIError

TABLE_DEFAULTS: dict[str, dict[str, Any]] = {
    "users": {"is_admin": False, "is_member": True, "active_member": True},
    "positions": {},
    "elections": {"is_active": True, "closed_at": None},
    "election_positions": {
        "status": "pending",
        "current_round": 1,
        "present_count_snapshot": None,
        "opened_at": None,
        "closed_at": None,
        "close_reason": None,
    },
    "election_attendance": {"is_present": False, "marked_at": None},
    "candidates": {},
    "votes": {"candidate_id": None},
    "election_winners": {},
}

# (columns, partial-index predicate)
UNIQUE_CONSTRAINTS: dict[str, list[tuple[tuple[str, ...], Any]]] = {
    "users": [(("email",), None)],
    "positions": [(("name",), None)],
    "election_positions": [
        (("election_id", "position_id"), None),
        (("election_id", "order_index"), None),
        (("election_id",), lambda row: row["status"] == "open"),
    ],
    "election_attendance": [(("election_id", "member_id"), None)],
    "candidates": [(("user_id", "position_id", "election_id"), None)],
    "votes": [(("voter_id", "position_id", "election_id", "round"), None)],
    "election_winners": [(("election_id", "position_id"), None)],
}

_EPOCH = datetime(2026, 1, 1, tzinfo=UTC)


@dataclass
class FakeResponse:
    data: list[dict[str, Any]]
    count: int | None = None


class FakeQuery:
    """Chainable query mirroring postgrest's request builders."""

    def __init__(self, store: FakeSupabase, table: str) -> None:
        self.store = store
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: list[tuple[str, str, Any]] = []
        self.order_by: tuple[str, bool] | None = None
        self.limit_to: int | None = None
        self.count_mode: str | None = None
        self.head = False

    def select(self, columns: str = "*", count: str | None = None, head: bool | None = None):
        self.action = "select"
        self.columns = columns
        self.count_mode = count
        self.head = bool(head)
        return self

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]):
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict[str, Any]):
        self.action = "update"
        self.payload = payload
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list[Any]):
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, size: int):
        self.limit_to = size
        return self

    def matches(self, row: dict[str, Any]) -> bool:
        for op, column, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    def project(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.columns.strip() == "*":
            return dict(row)
        return {column.strip(): row.get(column.strip()) for column in self.columns.split(",")}

    def execute(self) -> FakeResponse:
        with self.store.lock:
            failure = self.store.failures.pop((self.table, self.action), None)
            if failure is not None:
                raise failure
            return getattr(self, f"_execute_{self.action}")()

    def _execute_select(self) -> FakeResponse:
        rows = [row for row in self.store.tables[self.table] if self.matches(row)]
        if self.order_by:
            column, desc = self.order_by
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        if self.limit_to is not None:
            rows = rows[: self.limit_to]
        if self.head:
            return FakeResponse(data=[], count=len(rows))
        data = [self.project(row) for row in rows]
        return FakeResponse(data=data, count=len(data) if self.count_mode else None)

    def _execute_insert(self) -> FakeResponse:
        payloads = self.payload if isinstance(self.payload, list) else [self.payload]
        table = self.store.tables[self.table]
        new_rows = [self.store.with_defaults(self.table, payload) for payload in payloads]
        self.store.check_unique(self.table, table + new_rows)
        table.extend(new_rows)
        return FakeResponse(data=[dict(row) for row in new_rows])

    def _execute_update(self) -> FakeResponse:
        table = self.store.tables[self.table]
        updated = [{**row, **self.payload} if self.matches(row) else row for row in table]
        self.store.check_unique(self.table, updated)
        self.store.tables[self.table] = updated
        return FakeResponse(
            data=[dict(row) for row, before in zip(updated, table) if self.matches(before)]
        )

    def _execute_delete(self) -> FakeResponse:
        table = self.store.tables[self.table]
        removed = [row for row in table if self.matches(row)]
        self.store.tables[self.table] = [row for row in table if not self.matches(row)]
        return FakeResponse(data=[dict(row) for row in removed])


class FakeSupabase:
    """Minimal ``supabase.Client`` replacement backed by Python lists."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in TABLE_DEFAULTS}
        self.lock = threading.RLock()
        self.failures: dict[tuple[str, str], Exception] = {}
        self._clock = itertools.count()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail_next(self, table: str, action: str, exc: Exception) -> None:
        """Make the next ``action`` on ``table`` raise ``exc``."""
        self.failures[(table, action)] = exc

    def with_defaults(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        row = {**TABLE_DEFAULTS[table], **payload}
        row.setdefault("id", str(uuid.uuid4()))
        if table not in {"users", "positions", "candidates"}:
            row.setdefault("created_at", self.tick())
        return row

    def tick(self) -> str:
        """Strictly increasing timestamp so ordering by created_at is stable."""
        return (_EPOCH + timedelta(seconds=next(self._clock))).isoformat()

    def check_unique(self, table: str, rows: list[dict[str, Any]]) -> None:
        for columns, predicate in UNIQUE_CONSTRAINTS.get(table, []):
            seen: set[tuple[Any, ...]] = set()
            for row in rows:
                if predicate is not None and not predicate(row):
                    continue
                key = tuple(row.get(column) for column in columns)
                if key in seen:
                    raise APIError(
                        {
                            "message": (
                                "duplicate key value violates unique constraint "
                                f'"{table}_{"_".join(columns)}_key"'
                            ),
                            "code": "23505",
                            "hint": None,
                            "details": f"Key ({', '.join(columns)}) already exists.",
                        }
                    )
                seen.add(key)
