"""
Background Jobs Module

Handles scheduled tasks for:
- Fulfillment event processing
- Fulfillment state reconciliation
"""

from fulfillment.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from fulfillment.jobs.fulfillment_jobs import process_fulfillment_events, reconcile_fulfillment

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "process_fulfillment_events",
    "reconcile_fulfillment",
]
