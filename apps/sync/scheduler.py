"""
Sync Scheduler - Cron and On-Demand Execution

Manages scheduled and one-off sync runs using APScheduler.

Features:
- RUN_ONCE mode (default): run once and exit 0 on success, 1 on failure
- Cron-based scheduling (SYNC_SCHEDULE_CRON, hourly by default) with RUN_ONCE=false
- Graceful shutdown handling

Usage:
    # Incremental refresh, once
    python -m apps.sync

    # Full reseed, once
    python -m apps.sync seed

    # Hourly refresh until SIGINT/SIGTERM
    RUN_ONCE=false python -m apps.sync
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from apps.sync.job import SyncMode, run_sync
from utils.config import Settings, get_settings
from utils.errors import ConfigurationError
from utils.logging import setup_logging

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Scheduler for periodic or on-demand sync runs.

    Handles:
    - APScheduler setup and management
    - Cron-based scheduling
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(self, mode: SyncMode, settings: Settings, run_once: bool = True) -> None:
        """
        Initialize scheduler.

        Args:
            mode: Sync mode used for every run
            settings: Loaded application settings
            run_once: If True, run once and return
        """
        self.mode = mode
        self.settings = settings
        self.run_once = run_once
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()

        logger.info(
            "SyncScheduler initialized",
            extra={
                "mode": mode.value,
                "run_once": run_once,
                "cron_schedule": settings.SYNC_SCHEDULE_CRON,
            },
        )

    async def execute_sync(self) -> None:
        """Execute one sync run, logging and re-raising any failure."""
        try:
            await run_sync(self.mode, self.settings)
        except Exception as e:
            logger.error(
                "Sync run failed",
                extra={"mode": self.mode.value, "error": str(e)},
                exc_info=True,
            )
            raise

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating graceful shutdown")
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Execute once or start the scheduler.

        In RUN_ONCE mode, executes immediately and returns.
        In scheduled mode, runs continuously until shutdown signal.
        """
        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_sync()
            return

        self.setup_signal_handlers()
        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        trigger = CronTrigger.from_crontab(self.settings.SYNC_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_sync,
            trigger=trigger,
            id="sync_job",
            name=f"Periodic WR {self.mode.value}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        # Start scheduler first to get next_run_time
        self.scheduler.start()

        job = self.scheduler.get_job("sync_job")
        next_run = getattr(job, "next_run_time", None)

        logger.info(
            "Scheduled sync job",
            extra={
                "schedule": self.settings.SYNC_SCHEDULE_CRON,
                "next_run": str(next_run) if next_run is not None else None,
            },
        )

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="strafes-sync",
        description="Synchronize StrafesNET world records into the globals database.",
    )
    parser.add_argument(
        "mode",
        nargs="?",
        default=None,
        help="'seed' for a full reseed; anything else runs an incremental refresh",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = parse_args(argv)
    mode = SyncMode.parse(args.mode)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        setup_logging(format_type="text")
        logger.error("Configuration error: %s", e.message)
        return 1

    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)

    scheduler = SyncScheduler(mode, settings, run_once=settings.RUN_ONCE)

    try:
        await scheduler.start()
    except Exception as e:
        logger.error("Sync failed: %s", str(e))
        return 1
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
