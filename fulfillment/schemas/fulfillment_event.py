from typing import Optional, List
from datetime import datetime
import uuid

from pydantic import BaseModel

from fulfillment.schemas.base import BaseResponseSchema


class FulfillmentEventResponse(BaseResponseSchema):
    id: uuid.UUID
    event_type: str
    aggregate_type: str
    aggregate_id: uuid.UUID
    payload: dict
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None


class FulfillmentEventListResponse(BaseResponseSchema):
    items: List[FulfillmentEventResponse]
    total: int


class ProcessEventsResult(BaseModel):
    processed: int
    failed: int
    remaining: int
