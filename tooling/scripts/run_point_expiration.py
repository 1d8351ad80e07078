"""Expire idle loyalty balances once.

Intended usage: schedule daily via cron, or run by hand after changing a
restaurant's ``point_expiry_days``.

Example:
    python tooling/scripts/run_point_expiration.py --as-of 2026-10-19
"""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute the point expiration sweep once")
    parser.add_argument(
        "--as-of",
        default=None,
        help="ISO date (UTC) to evaluate inactivity against; defaults to now.",
    )
    return parser.parse_args()


def _parse_reference(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    parsed = dt.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


async def _run(reference: dt.datetime | None) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from revisit_api.db.session import async_session, engine  # type: ignore import-position
    from revisit_api.jobs.loyalty import run_point_expiration  # type: ignore import-position

    try:
        return await run_point_expiration(session_factory=async_session, now=reference)
    finally:
        await engine.dispose()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(_parse_reference(args.as_of)))
    logger.success(
        "Point expiration run completed",
        restaurants=summary.get("restaurants", 0),
        customers_expired=summary.get("customers_expired", 0),
        points_expired=summary.get("points_expired", 0),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
