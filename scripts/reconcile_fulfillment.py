"""Run every fulfillment reconciliation step once and print the summary."""
import asyncio
import logging

from fulfillment.config import settings
from fulfillment.database import get_db_session
from fulfillment.services.reconciliation_service import ReconciliationService


async def main():
    async with get_db_session() as session:
        results = await ReconciliationService(session).run_all()

    for step, summary in results.items():
        print(f"{step}: {summary}")


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
