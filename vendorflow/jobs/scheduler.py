"""
APScheduler Configuration

The scheduler is built by the application lifespan and handed the session
factory it should use; nothing is scheduled at import time.
"""

import logging
from typing import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from vendorflow.config import Settings
from vendorflow.jobs.monitoring_jobs import run_order_monitoring

logger = logging.getLogger(__name__)

# Job defaults
JOB_DEFAULTS = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}


async def run_job(job_name: str, job: Callable[..., Awaitable[dict]], *args) -> None:
    """
    Wrapper used for every scheduled job.

    A failing run is logged and the next interval runs normally.
    """
    try:
        result = await job(*args)
        logger.info(f"Job '{job_name}' completed: {result}")
    except Exception:
        logger.exception(f"Job '{job_name}' failed")


def build_scheduler(session_factory, settings: Settings) -> AsyncIOScheduler:
    """Create a scheduler with the fulfillment jobs registered (not started)."""
    scheduler = AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults=JOB_DEFAULTS,
        timezone='UTC',
    )

    # Staleness scan, which also runs the proof expiry sweep when enabled
    scheduler.add_job(
        run_job,
        'interval',
        minutes=settings.MONITORING_INTERVAL_MINUTES,
        args=['order_monitoring', run_order_monitoring, session_factory],
        id='order_monitoring',
        name='Order Monitoring Scan',
        replace_existing=True,
    )
    return scheduler


def get_job_status(scheduler: AsyncIOScheduler):
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if getattr(job, 'next_run_time', None) else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
