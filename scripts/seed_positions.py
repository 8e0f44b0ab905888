"""Insert catalog positions (e.g. President, Treasurer) into Supabase."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from postgrest import APIError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_POSITIONS = (
    "President",
    "Vice President",
    "Secretary",
    "Treasurer",
)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Create positions in public.positions, skipping existing names.",
    )
    parser.add_argument(
        "names",
        nargs="*",
        default=list(DEFAULT_POSITIONS),
        help="Position names to create (default: %(default)s).",
    )
    return parser.parse_args(argv)


def normalize_names(names: Sequence[str]) -> list[str]:
    """Strip blanks and drop case-insensitive duplicates, keeping first spelling."""
    seen: set[str] = set()
    result: list[str] = []
    for raw in names:
        name = raw.strip()
        if not name or name.lower() in seen:
            continue
        seen.add(name.lower())
        result.append(name)
    return result


def create_positions(names: Sequence[str]) -> tuple[list[str], list[str]]:
    """Insert each position; return (created, already_present)."""
    from scrutiny.services.common import is_unique_violation
    from scrutiny.utils.supabase_client import get_service_client

    client = get_service_client()
    created: list[str] = []
    skipped: list[str] = []

    for name in normalize_names(names):
        try:
            client.table("positions").insert({"name": name}).execute()
            created.append(name)
        except APIError as exc:
            if is_unique_violation(exc):
                skipped.append(name)
                continue
            raise

    return created, skipped


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    created, skipped = create_positions(args.names)
    for name in created:
        print(f"created  {name}")
    for name in skipped:
        print(f"exists   {name}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
