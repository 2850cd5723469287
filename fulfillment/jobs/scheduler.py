"""
In-process scheduler for the fulfillment jobs.

Runs on the API's event loop. Each job is coalesced and never overlaps
with itself, so a slow reconciliation run simply delays the next one.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from fulfillment.config import settings
from fulfillment.jobs.fulfillment_jobs import process_fulfillment_events, reconcile_fulfillment

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(
    jobstores={'default': MemoryJobStore()},
    executors={'default': AsyncIOExecutor()},
    job_defaults={
        'coalesce': True,
        'max_instances': 1,
        'misfire_grace_time': 60,
    },
    timezone=settings.SCHEDULER_TIMEZONE,
)


def _fulfillment_jobs():
    """(id, name, callable, interval trigger kwargs) for every job."""
    return [
        (
            'process_fulfillment_events',
            'Process Fulfillment Events',
            process_fulfillment_events,
            {'seconds': settings.EVENT_POLL_INTERVAL_SECONDS},
        ),
        (
            'reconcile_fulfillment',
            'Reconcile Fulfillment State',
            reconcile_fulfillment,
            {'minutes': settings.RECONCILE_INTERVAL_MINUTES},
        ),
    ]


def start_scheduler():
    """Register the fulfillment jobs and start the scheduler once."""
    if scheduler.running:
        return

    for job_id, name, func, interval in _fulfillment_jobs():
        scheduler.add_job(func, 'interval', id=job_id, name=name, replace_existing=True, **interval)

    scheduler.start()
    logger.info("Background job scheduler started")
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Scheduled jobs with their triggers and next run times."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
