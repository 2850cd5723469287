"""Tests for the fulfillment event outbox."""

import uuid

import pytest

from fulfillment.core.exceptions import NotFound
from fulfillment.models.fulfillment_event import EventStatus, EventType
from fulfillment.services.event_service import EventService


async def enqueue_paid_event(session, pr_id=None):
    event = EventService(session).enqueue(
        EventType.PURCHASE_REQUEST_PAID,
        aggregate_type="purchase_request",
        aggregate_id=pr_id or uuid.uuid4(),
        payload={"pr_number": "PR999999"},
    )
    await session.commit()
    return event


class TestEventProcessing:

    async def test_order_without_purchase_requests_is_a_no_op(self, db_session):
        event = EventService(db_session).enqueue(
            EventType.ORDER_IN_TRANSIT, aggregate_type="order", aggregate_id=uuid.uuid4()
        )
        await db_session.commit()

        assert await EventService(db_session).process_event(event.id) is True
        await db_session.refresh(event)
        assert event.status == EventStatus.PROCESSED.value
        assert event.attempts == 1
        assert event.processed_at is not None

    async def test_processed_event_is_not_applied_again(self, db_session):
        event = EventService(db_session).enqueue(
            EventType.ORDER_IN_TRANSIT, aggregate_type="order", aggregate_id=uuid.uuid4()
        )
        await db_session.commit()
        service = EventService(db_session)

        assert await service.process_event(event.id) is True
        assert await service.process_event(event.id) is False

    async def test_failure_is_recorded_until_attempts_run_out(self, db_session):
        event = await enqueue_paid_event(db_session)
        service = EventService(db_session, max_attempts=2)

        assert await service.process_event(event.id) is False
        await db_session.refresh(event)
        assert (event.status, event.attempts) == (EventStatus.PENDING.value, 1)
        assert event.last_error.startswith("NotFound")

        assert await service.process_event(event.id) is False
        await db_session.refresh(event)
        assert (event.status, event.attempts) == (EventStatus.FAILED.value, 2)

        # Parked events are left alone by the processor
        assert await service.process_event(event.id) is False
        await db_session.refresh(event)
        assert event.attempts == 2

    async def test_retry_failed_resets_attempts(self, db_session):
        event = await enqueue_paid_event(db_session)
        service = EventService(db_session, max_attempts=1)
        await service.process_event(event.id)

        retried = await service.retry_failed(event.id)

        assert (retried.status, retried.attempts) == (EventStatus.FAILED.value, 1)

    async def test_unknown_event(self, db_session):
        with pytest.raises(NotFound):
            await EventService(db_session).process_event(uuid.uuid4())

    async def test_process_pending_counts(self, db_session):
        service = EventService(db_session)
        service.enqueue(EventType.ORDER_IN_TRANSIT, aggregate_type="order", aggregate_id=uuid.uuid4())
        service.enqueue(EventType.ORDER_IN_TRANSIT, aggregate_type="order", aggregate_id=uuid.uuid4())
        await db_session.commit()
        await enqueue_paid_event(db_session)

        result = await EventService(db_session).process_pending()

        assert result == {"processed": 2, "failed": 1, "remaining": 1}


class TestEventEndpoints:

    async def test_process_and_list(self, client, db_session):
        event = await enqueue_paid_event(db_session)

        response = await client.post("/api/fulfillment-events/process")
        assert response.json() == {"processed": 0, "failed": 1, "remaining": 1}

        response = await client.get("/api/fulfillment-events", params={"status": "PENDING"})
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == str(event.id)
        assert data["items"][0]["attempts"] == 1

    async def test_only_failed_events_can_be_retried(self, client, db_session):
        event = await enqueue_paid_event(db_session)

        response = await client.post(f"/api/fulfillment-events/{event.id}/retry")

        assert response.status_code == 400

    async def test_paid_purchase_request_leaves_a_processed_event(self, client, create_order, tile):
        order = await create_order()
        pr = (await client.post("/api/purchase-request", json={
            "vendor": "Kajaria Ceramics",
            "items": [{"order_id": order["id"], "product_id": str(tile.id), "quantity": 4, "price": "50.00"}],
        })).json()
        url = f"/api/purchase-request/{pr['id']}"
        await client.put(url, json={
            "pi_received": True, "pi_number": "PI-1", "pi_date": "2026-03-01T00:00:00Z", "pi_amount": "200.00",
        })
        await client.put(url, json={
            "payment_done": True, "payment_amount": "200.00", "payment_utr": "UTR1", "payment_mode": "upi",
        })

        response = await client.get("/api/fulfillment-events", params={"aggregate_id": pr["id"]})

        (event,) = response.json()["items"]
        assert event["event_type"] == "PURCHASE_REQUEST_PAID"
        assert event["status"] == "PROCESSED"
