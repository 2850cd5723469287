from fulfillment.models.user import User
from fulfillment.models.product import Product
from fulfillment.models.order import (
    Order,
    OrderGroup,
    OrderItem,
    OrderStatusHistory,
    OrderStatus,
    PaymentStatus,
)
from fulfillment.models.purchase_request import (
    PurchaseRequest,
    PurchaseRequestItem,
    PRStatus,
    PaymentMode,
)
from fulfillment.models.dispatch import DispatchNote, DispatchItem, DispatchStatus
from fulfillment.models.payment_receipt import PaymentReceipt, ReceiptPaymentMode, ReceiptStatus
from fulfillment.models.sell_record import SellRecord, SellRecordItem
from fulfillment.models.document_sequence import DocumentSequence, DocumentType
from fulfillment.models.fulfillment_event import FulfillmentEvent, EventType, EventStatus

__all__ = [
    "User",
    "Product",
    "Order",
    "OrderGroup",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatus",
    "PaymentStatus",
    "PurchaseRequest",
    "PurchaseRequestItem",
    "PRStatus",
    "PaymentMode",
    "DispatchNote",
    "DispatchItem",
    "DispatchStatus",
    "PaymentReceipt",
    "ReceiptPaymentMode",
    "ReceiptStatus",
    "SellRecord",
    "SellRecordItem",
    "DocumentSequence",
    "DocumentType",
    "FulfillmentEvent",
    "EventType",
    "EventStatus",
]
