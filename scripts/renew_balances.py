#!/usr/bin/env python3
"""Open a new leave year from the command line.

Runs the same renewal as ``POST /api/v1/leave/balances/renew``: every active
user gets a row per leave type for the target year, VACATION carrying over
whatever was left unused the year before.  Safe to re-run.

Usage:
    python scripts/renew_balances.py --year 2027
    python scripts/renew_balances.py              # next calendar year

Exit codes:
    0 = renewal committed
    1 = renewal refused (bad year, empty leave catalog)
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from leaveflow.common.audit import utcnow
from leaveflow.common.exceptions import AppException
from leaveflow.config import LOG_DATEFMT, LOG_FORMAT, settings
from leaveflow.database import async_session_factory, engine
from leaveflow.leave.renewal import RenewalEngine
from leaveflow.leave.schemas import RenewalOut

logger = logging.getLogger("renew_balances")


async def run(year: int, session_factory=async_session_factory) -> RenewalOut:
    """Renew *year* in its own transaction and commit."""
    async with session_factory() as session:
        try:
            summary = await RenewalEngine.renew(session, year)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Renew leave balances for a new year (VACATION rollover)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--year", type=int, default=utcnow().year + 1,
                        help="Year to open (default: next calendar year)")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )

    async def _main() -> RenewalOut:
        try:
            return await run(args.year)
        finally:
            await engine.dispose()

    try:
        summary = asyncio.run(_main())
    except AppException as exc:
        logger.error("Renewal for %d refused: %s", args.year, exc.detail)
        sys.exit(1)

    print(f"\n{'═' * 60}")
    print(f"  LEAVE BALANCES RENEWED FOR {summary.year}")
    print(f"{'═' * 60}")
    print(f"  Users renewed:          {summary.renewed}")
    print(f"  VACATION days rolled:   {summary.rollover}")
    print()


if __name__ == "__main__":
    main()
