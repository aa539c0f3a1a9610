"""Worker process for scheduled balance jobs.

Runs an asyncio loop that opens the current year's balances once per
interval; the run is idempotent, so it also catches users onboarded since
the last pass.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date

from leaveflow.config import get_settings
from leaveflow.db import dispose_engine, session_scope
from leaveflow.services.rollover import RolloverRunResult, run_annual_rollover

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


async def run_rollover_once(period_year: int) -> RolloverRunResult:
    async with session_scope() as session:
        return await run_annual_rollover(session, period_year)


async def run_rollover_loop() -> None:
    """Main worker loop that runs the annual rollover for the current year."""
    interval = get_settings().rollover_interval_seconds
    logger.info("Rollover worker started (interval=%ds)", interval)

    while True:
        year = date.today().year
        try:
            result = await run_rollover_once(year)
            if result.opened or result.carried_over or result.errors:
                logger.info(
                    "Rollover run for %d: opened=%d carried_over=%d skipped=%d errors=%d",
                    year,
                    result.opened,
                    result.carried_over,
                    result.skipped,
                    result.errors,
                )
        except Exception:
            logger.exception("Rollover run failed for %d", year)

        await asyncio.sleep(interval)


def main() -> None:
    """Entry point for the worker process."""
    _configure_logging()
    asyncio.run(run_rollover_loop())


def annual_reset() -> None:
    """CLI: open balances for a given year once, then exit."""
    parser = argparse.ArgumentParser(description="Open leave balances for a year, with carry-over.")
    parser.add_argument("year", nargs="?", type=int, default=date.today().year)
    args = parser.parse_args()

    _configure_logging()

    async def _run() -> RolloverRunResult:
        try:
            return await run_rollover_once(args.year)
        finally:
            await dispose_engine()

    result = asyncio.run(_run())
    if result.errors:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
