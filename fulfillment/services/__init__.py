# Services module
from fulfillment.services.order_service import OrderService
from fulfillment.services.dispatch_service import DispatchService
from fulfillment.services.purchase_request_service import PurchaseRequestService
from fulfillment.services.payment_receipt_service import PaymentReceiptService
from fulfillment.services.sell_record_service import SellRecordService
from fulfillment.services.inventory_service import InventoryService
from fulfillment.services.event_service import EventService
from fulfillment.services.reconciliation_service import ReconciliationService
from fulfillment.services.document_sequence_service import DocumentSequenceService

__all__ = [
    "OrderService",
    "DispatchService",
    "PurchaseRequestService",
    "PaymentReceiptService",
    "SellRecordService",
    "InventoryService",
    "EventService",
    "ReconciliationService",
    "DocumentSequenceService",
]
