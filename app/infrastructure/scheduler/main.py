"""
Scheduler for OTP Gate maintenance jobs.

Standalone Usage:
    python -m app.infrastructure.scheduler.main
"""

import asyncio
import logging
import signal
from datetime import timezone

from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import scheduler_logger, settings


logging.getLogger("apscheduler").setLevel(logging.INFO)


def _sync_database_url(url: str | None = None) -> str:
    """Convert an async database URL to a synchronous one for APScheduler.

    Only the driver part of the scheme changes; the rest of the URL,
    including any percent-encoded password, is kept as is.
    """
    scheme, rest = (url or settings.DATABASE_URL).split("://", 1)
    scheme = scheme.replace("+asyncpg", "").replace("+aiosqlite", "")
    return f"{scheme}://{rest}"


scheduler = AsyncIOScheduler(
    jobstores={
        "maintenance": SQLAlchemyJobStore(
            url=_sync_database_url(),
            tablename="scheduler_maintenance_jobs",
        ),
    },
    timezone=timezone.utc,
)


def schedule_purge_expired_challenges_job(retention_days: int = 1) -> None:
    """
    Schedule the purge_expired_challenges job to run daily at 3:00 AM UTC.
    """
    # Import here to avoid circular import issues
    from app.infrastructure.scheduler.jobs import purge_expired_challenges

    scheduler_logger.info(
        "Scheduling 'purge_expired_challenges' job to run daily at 3:00 AM UTC"
    )
    scheduler.add_job(
        purge_expired_challenges,
        trigger=CronTrigger(hour=3, minute=0, timezone=timezone.utc),
        replace_existing=True,
        id="purge_expired_challenges_job",
        jobstore="maintenance",
        misfire_grace_time=60 * 60,  # 1 hour grace time
        kwargs={"retention_days": retention_days},
    )
    scheduler_logger.info("'purge_expired_challenges' job scheduled successfully.")


def initialize_scheduler() -> None:
    """
    Register every maintenance job.

    Call after `scheduler.start()` during application startup.
    """
    schedule_purge_expired_challenges_job(retention_days=settings.OTP_RETENTION_DAYS)


async def main() -> None:
    """Run the scheduler on its own until SIGINT or SIGTERM."""
    shutdown_event = asyncio.Event()

    def handle_shutdown(signum, frame):
        scheduler_logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    scheduler_logger.info("Starting standalone scheduler...")

    try:
        scheduler.start()
        scheduler_logger.info("Scheduler started successfully. Waiting for jobs...")
        initialize_scheduler()
        await shutdown_event.wait()

    except Exception as e:
        scheduler_logger.exception(f"Scheduler error: {e}")
        raise

    finally:
        scheduler_logger.info("Shutting down scheduler...")
        if scheduler.running:
            scheduler.shutdown(wait=True)
            scheduler_logger.info("Scheduler stopped successfully.")


if __name__ == "__main__":
    asyncio.run(main())
