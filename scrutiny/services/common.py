"""Shared Supabase data access helpers."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from postgrest import APIError

from scrutiny.config import settings
from scrutiny.utils.errors import ConflictError, InvalidInputError, NotFoundError
from supabase import Client

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: APIError) -> bool:
    """Return True when a write failed on a unique constraint."""
    message = str(getattr(exc, "message", "")).lower()
    code = str(getattr(exc, "code", "")).lower()
    return code == UNIQUE_VIOLATION or "duplicate key value" in message


class SupabaseService:
    """Thin helper wrapper around a Supabase client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def execute(
        self,
        query,
        default: Any = None,
        conflict: ConflictError | None = None,
    ) -> Any:
        """Execute a Supabase query and normalize API errors.

        Unique violations surface as ``conflict`` (or a generic
        ``ConflictError``); every other API error becomes ``InvalidInputError``.
        """
        started = time.perf_counter()
        try:
            response = query.execute()
        except APIError as exc:
            if is_unique_violation(exc):
                raise (conflict or ConflictError("Duplicate record")) from exc
            message = getattr(exc, "message", "Database request failed")
            raise InvalidInputError(str(message)) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        threshold_ms = settings.slow_query_log_threshold_ms
        if threshold_ms > 0 and elapsed_ms >= threshold_ms:
            logger.warning("Slow Supabase query %.1fms", elapsed_ms)
        data = response.data
        return default if data is None and default is not None else data

    def select_one(
        self,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        """Select a single row and raise NotFoundError when missing."""
        query = self.client.table(table).select(columns)
        for key, value in filters.items():
            query = query.eq(key, value)
        rows = self.execute(query.limit(1), default=[])
        if not rows:
            label = not_found_label or table
            raise NotFoundError(label)
        return rows[0]

    def select_many(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select many rows from a table with optional filters and ordering."""
        query = self.client.table(table).select(columns)
        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit:
            query = query.limit(limit)
        return self.execute(query, default=[])

    def select_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Select rows whose ``column`` is one of ``values``."""
        wanted = sorted({str(value) for value in values})
        if not wanted:
            return []
        return self.execute(
            self.client.table(table).select(columns).in_(column, wanted),
            default=[],
        )

    def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        """Count rows in a table with optional equality filters."""
        query = self.client.table(table).select("*", count="exact", head=True)
        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)
        try:
            response = query.execute()
            return response.count or 0
        except APIError as exc:
            message = getattr(exc, "message", "Database request failed")
            raise InvalidInputError(str(message)) from exc

    def insert_one(
        self,
        table: str,
        payload: dict[str, Any],
        conflict: ConflictError | None = None,
    ) -> dict[str, Any]:
        """Insert one row and return the created object."""
        rows = self.execute(
            self.client.table(table).insert(payload),
            default=[],
            conflict=conflict,
        )
        if not rows:
            raise InvalidInputError(f"Failed to insert into {table}")
        return rows[0]

    def insert_many(
        self,
        table: str,
        payloads: list[dict[str, Any]],
        conflict: ConflictError | None = None,
    ) -> list[dict[str, Any]]:
        """Insert many rows in one request and return inserted rows."""
        if not payloads:
            return []
        return self.execute(
            self.client.table(table).insert(payloads),
            default=[],
            conflict=conflict,
        )

    def update(
        self,
        table: str,
        filters: dict[str, Any],
        payload: dict[str, Any],
        conflict: ConflictError | None = None,
    ) -> list[dict[str, Any]]:
        """Update rows by equality filters and return the updated rows.

        With filters on the expected current values this acts as a
        compare-and-set: an empty result means nothing matched.
        """
        query = self.client.table(table).update(payload)
        for key, value in filters.items():
            query = query.eq(key, value)
        return self.execute(query, default=[], conflict=conflict)

    def delete(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        """Delete rows by equality filters and return removed rows."""
        query = self.client.table(table).delete()
        for key, value in filters.items():
            query = query.eq(key, value)
        return self.execute(query, default=[])

    def get_users_map(self, user_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Fetch multiple users and return an id-keyed mapping."""
        rows = self.select_in("users", "id", user_ids)
        return {str(row["id"]): row for row in rows}


def group_by(rows: list[dict[str, Any]], key: str) -> dict[str, list[dict[str, Any]]]:
    """Group rows by an arbitrary key."""
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[str(row[key])].append(row)
    return grouped
