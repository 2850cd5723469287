from typing import Optional
import uuid

from fastapi import APIRouter, Query

from fulfillment.api.deps import DB, CurrentUser
from fulfillment.schemas.fulfillment_event import (
    FulfillmentEventListResponse,
    FulfillmentEventResponse,
    ProcessEventsResult,
)
from fulfillment.services.event_service import EventService


router = APIRouter(tags=["Fulfillment Events"])


@router.get("", response_model=FulfillmentEventListResponse)
async def list_events(
    db: DB,
    current_user: CurrentUser,
    status: Optional[str] = Query(None, description="PENDING, PROCESSED or FAILED"),
    aggregate_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    """Cross-aggregate events, newest first."""
    events = await EventService(db).list_events(status=status, aggregate_id=aggregate_id, limit=limit)
    return FulfillmentEventListResponse(
        items=[FulfillmentEventResponse.model_validate(e) for e in events],
        total=len(events),
    )


@router.post("/process", response_model=ProcessEventsResult)
async def process_pending_events(
    db: DB,
    current_user: CurrentUser,
    limit: Optional[int] = Query(None, ge=1, le=1000),
):
    """Apply pending events now instead of waiting for the scheduler."""
    result = await EventService(db).process_pending(limit=limit)
    return ProcessEventsResult(**result)


@router.post("/{event_id}/retry", response_model=FulfillmentEventResponse)
async def retry_event(
    event_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Re-queue a FAILED event and try it once more."""
    event = await EventService(db).retry_failed(event_id)
    return FulfillmentEventResponse.model_validate(event)
