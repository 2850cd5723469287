"""
Fulfillment background jobs.

Each job opens its own session; errors are logged so the scheduler keeps
running.
"""

import logging

from fulfillment.database import get_db_session
from fulfillment.services.event_service import EventService
from fulfillment.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


async def process_fulfillment_events() -> dict:
    """Apply pending fulfillment events, oldest first."""
    try:
        async with get_db_session() as db:
            result = await EventService(db).process_pending()
    except Exception as e:
        logger.error(f"Job 'process_fulfillment_events' failed: {e}")
        return {"error": str(e)}

    if result["processed"] or result["failed"]:
        logger.info(
            f"Fulfillment events: {result['processed']} processed, "
            f"{result['failed']} failed, {result['remaining']} pending"
        )
    return result


async def reconcile_fulfillment() -> dict:
    """Run every reconciliation step."""
    try:
        async with get_db_session() as db:
            results = await ReconciliationService(db).run_all()
    except Exception as e:
        logger.error(f"Job 'reconcile_fulfillment' failed: {e}")
        return {"error": str(e)}

    logger.info(f"Job 'reconcile_fulfillment' completed: {results}")
    return results
