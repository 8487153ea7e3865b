"""APScheduler integration for FastAPI.

Runs the all-connections exchange sync on a fixed interval.
"""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from journal.config import settings
from journal.database import engine

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

SYNC_JOB_ID = "exchange_sync"


def _session_factory() -> Session:
    return Session(engine)


async def run_scheduled_sync():
    """One scheduled pass over every connection, bounded by the job budget."""
    from journal.engine.trade_sync import sync_all_connections
    from journal.services.hyperliquid_client import HyperliquidClient

    client = HyperliquidClient()
    try:
        results = await asyncio.wait_for(
            sync_all_connections(_session_factory, client),
            timeout=settings.sync_job_budget_seconds,
        )
        return results
    except asyncio.TimeoutError:
        # Users finished before the cutoff keep their results
        logger.error(f"Scheduled sync exceeded {settings.sync_job_budget_seconds}s budget, aborted")
        return None
    finally:
        await client.close()


def add_sync_job(interval_minutes: int):
    """Add or replace the periodic sync job."""
    # Pending jobs are not replaced by replace_existing before start()
    if scheduler.get_job(SYNC_JOB_ID):
        scheduler.remove_job(SYNC_JOB_ID)

    scheduler.add_job(
        run_scheduled_sync,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=SYNC_JOB_ID,
        name="Exchange fill sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled exchange sync every {interval_minutes}m")


def start_scheduler():
    """Start the scheduler with the sync job."""
    add_sync_job(settings.sync_interval_minutes)
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if getattr(j, "next_run_time", None) else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
