from fastapi import APIRouter

from fulfillment.api.endpoints import (
    # Orders & fulfillment
    orders,
    dispatches,
    pending_dispatch,
    purchase_requests,
    payment_receipts,
    sell_records,
    # Product catalog
    products,
    # Cross-aggregate events & jobs
    fulfillment_events,
    jobs,
)


api_router = APIRouter(prefix="/api")

api_router.include_router(orders.router, prefix="/order")
api_router.include_router(dispatches.router, prefix="/dispatch")
api_router.include_router(pending_dispatch.router, prefix="/pending-dispatch")
api_router.include_router(purchase_requests.router, prefix="/purchase-request")
api_router.include_router(payment_receipts.router, prefix="/payment-receipt")
api_router.include_router(sell_records.router, prefix="/sell-record")
api_router.include_router(products.router, prefix="/product")
api_router.include_router(fulfillment_events.router, prefix="/fulfillment-events")
api_router.include_router(jobs.router, prefix="/jobs")
