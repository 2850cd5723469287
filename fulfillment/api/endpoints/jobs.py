from fastapi import APIRouter

from fulfillment.api.deps import CurrentUser
from fulfillment.jobs.scheduler import get_job_status


router = APIRouter(tags=["Jobs"])


@router.get("")
async def list_jobs(current_user: CurrentUser):
    """Scheduled background jobs and their next run times."""
    return {"jobs": get_job_status()}
