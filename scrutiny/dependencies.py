"""FastAPI dependency injection helpers."""

from __future__ import annotations

import threading
import time
from typing import Any

from fastapi import Depends, Header

from scrutiny.config import settings
from scrutiny.services.common import SupabaseService
from scrutiny.utils.errors import ForbiddenError, UnauthorizedError
from scrutiny.utils.supabase_client import get_service_client, get_supabase_client
from supabase import Client

_token_cache: dict[str, tuple[float, Any]] = {}
_admin_cache: dict[str, tuple[float, bool]] = {}
_cache_lock = threading.Lock()


def _cache_get(cache: dict[Any, tuple[float, Any]], key: Any) -> Any | None:
    """Return a cache value when present and not expired."""
    now = time.monotonic()
    with _cache_lock:
        entry = cache.get(key)
        if not entry:
            return None
        expires_at, value = entry
        if expires_at <= now:
            cache.pop(key, None)
            return None
        return value


def _cache_set(
    cache: dict[Any, tuple[float, Any]],
    key: Any,
    value: Any,
    ttl_seconds: int,
    max_entries: int,
) -> None:
    """Store a bounded cache value with TTL."""
    if ttl_seconds <= 0:
        return

    with _cache_lock:
        bounded_max_entries = max(1, max_entries)
        if len(cache) >= bounded_max_entries:
            oldest_key = next(iter(cache))
            cache.pop(oldest_key, None)
        cache[key] = (time.monotonic() + ttl_seconds, value)


def get_current_user(authorization: str = Header(None)) -> Any:
    """Extract and validate a Supabase JWT from the Authorization header.

    Raises:
        UnauthorizedError: 401 if the header is missing, malformed, or
            the token cannot be validated.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing authorization header")

    token = authorization.split(" ", 1)[1]
    cached_user = _cache_get(_token_cache, token)
    if cached_user is not None:
        return cached_user

    supabase = get_supabase_client()

    try:
        response = supabase.auth.get_user(token)
        if not response or not response.user:
            raise UnauthorizedError("Invalid token")
        _cache_set(
            _token_cache,
            token,
            response.user,
            settings.auth_token_cache_ttl_seconds,
            settings.auth_token_cache_max_entries,
        )
        return response.user
    except UnauthorizedError:
        raise
    except Exception as exc:
        raise UnauthorizedError("Invalid or expired token") from exc


def get_current_user_id(user: Any) -> str:
    """Extract a stable user id string from the Supabase user object."""
    return str(user.id)


def get_db_client() -> Client:
    """Return the privileged Supabase client used by backend services."""
    return get_service_client()


def is_admin(user_id: str, client: Client) -> bool:
    """Return whether ``user_id`` carries the ``users.is_admin`` flag."""
    cache_key = str(user_id)
    cached = _cache_get(_admin_cache, cache_key)
    if cached is not None:
        return bool(cached)

    rows = SupabaseService(client).select_many(
        "users",
        filters={"id": cache_key},
        columns="is_admin",
        limit=1,
    )
    flag = bool(rows and rows[0].get("is_admin"))
    _cache_set(
        _admin_cache,
        cache_key,
        flag,
        settings.admin_cache_ttl_seconds,
        settings.auth_token_cache_max_entries,
    )
    return flag


def require_admin(
    user: Any = Depends(get_current_user),
    client: Client = Depends(get_db_client),
) -> Any:
    """Let only administrators open, close, resolve or finalize anything."""
    if not is_admin(get_current_user_id(user), client):
        raise ForbiddenError("Only administrators can manage elections")
    return user
