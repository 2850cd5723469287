"""
Dispatch Note Service

Creating a dispatch note is one transaction: the note is numbered and
saved, the matching order items take the shipped quantity, and the order
status is re-derived. The order's version counter turns a concurrent
dispatch against the same order into a ConcurrencyConflict instead of a
lost update.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import uuid
import logging

from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import BusinessRuleViolation, NotFound, ValidationFailed
from fulfillment.database import commit_or_conflict
from fulfillment.models.document_sequence import DocumentType
from fulfillment.models.dispatch import DispatchItem, DispatchNote
from fulfillment.models.order import Order, OrderItem
from fulfillment.models.user import User
from fulfillment.schemas.dispatch import DispatchCreate, DispatchItemCreate
from fulfillment.services.document_sequence_service import DocumentSequenceService
from fulfillment.services.fulfillment_rules import derive_order_status, to_money
from fulfillment.services.order_service import OrderService
from fulfillment.services.status_machine import (
    can_dispatch_against,
    transition_order,
    validate_dispatch_transition,
)

logger = logging.getLogger(__name__)


class DispatchService:
    """Service for dispatch notes and their effect on orders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_dispatch(self, data: DispatchCreate, user: Optional[User] = None) -> DispatchNote:
        """
        Record goods shipped against an order.

        Each dispatch item is matched to an order item by product_id,
        narrowed by group_name when given (otherwise the first match in
        group order wins). Cumulative dispatch may not exceed the ordered
        quantity; the whole note is rejected if any item would.

        Raises:
            NotFound: Order does not exist
            BusinessRuleViolation: Order cannot receive dispatches
            ValidationFailed: Unmatched product or over-dispatch
        """
        order = await OrderService(self.db).require_order(data.order_id)
        if not can_dispatch_against(order.status):
            raise BusinessRuleViolation(f"Cannot dispatch against a {order.status} order")

        matches = self._match_items(order, data.items)

        # Check every line before touching anything
        requested: Dict[uuid.UUID, int] = {}
        order_items: Dict[uuid.UUID, OrderItem] = {}
        for dispatch_item, _, order_item in matches:
            requested[order_item.id] = requested.get(order_item.id, 0) + dispatch_item.quantity
            order_items[order_item.id] = order_item
        over = []
        for item_id, order_item in order_items.items():
            if order_item.dispatched_quantity + requested[item_id] > order_item.quantity:
                over.append({
                    "product_id": str(order_item.product_id),
                    "product_code": order_item.product_code,
                    "ordered": order_item.quantity,
                    "already_dispatched": order_item.dispatched_quantity,
                    "requested": requested[item_id],
                })
        if over:
            raise ValidationFailed("Dispatch quantity exceeds the balance on the order", details=over)

        dispatch_no = await DocumentSequenceService(self.db).get_next_number(DocumentType.DISPATCH_NOTE)

        dispatch = DispatchNote(
            dispatch_no=dispatch_no,
            dispatch_date=data.dispatch_date or datetime.now(timezone.utc),
            order_id=order.id,
            order_no=order.order_number,
            company_id=order.company_id,
            company_name=order.company_name,
            party_id=order.party_id,
            party_name=order.party_name,
            site_id=order.site_id,
            site_name=order.site_name,
            site_address=order.site_address,
            contact_person=order.contact_person,
            mobile=order.mobile,
            notes=data.notes,
            vehicle_number=data.vehicle_number,
            driver_name=data.driver_name,
            driver_mobile=data.driver_mobile,
            created_by=user.id if user else None,
            created_by_name=user.name if user else None,
            items=[],
        )

        for position, (dispatch_item, group_name, order_item) in enumerate(matches):
            net_rate = to_money(dispatch_item.net_rate if dispatch_item.net_rate is not None else order_item.net_rate)
            dispatch.items.append(
                DispatchItem(
                    position=position,
                    group_name=group_name,
                    order_item_id=order_item.id,
                    product_id=dispatch_item.product_id,
                    product_code=dispatch_item.product_code or order_item.product_code,
                    product_name=dispatch_item.product_name or order_item.product_name,
                    quantity=dispatch_item.quantity,
                    net_rate=net_rate,
                    total_amount=to_money(Decimal(dispatch_item.quantity) * net_rate),
                )
            )

            order_item.dispatched_quantity += dispatch_item.quantity
            order_item.balance_quantity = order_item.quantity - order_item.dispatched_quantity

        derived = derive_order_status(order.status, order.iter_items())
        if derived != order.status:
            transition_order(
                order, derived,
                changed_by=user.id if user else None,
                source="dispatch",
                notes=f"Dispatch note {dispatch_no}",
            )
        order.updated_at = datetime.now(timezone.utc)

        self.db.add(dispatch)
        await commit_or_conflict(self.db, "Order")
        logger.info(
            f"Dispatch {dispatch_no} created for {order.order_number}: "
            f"{dispatch.total_quantity} units, order status {order.status}"
        )

        return await self.require_dispatch(dispatch.id)

    @staticmethod
    def _match_items(order: Order, items: List[DispatchItemCreate]) -> List[Tuple[DispatchItemCreate, str, OrderItem]]:
        matches = []
        unmatched = []
        for dispatch_item in items:
            found = None
            group_name = None
            for group in order.groups:
                if dispatch_item.group_name and group.group_name != dispatch_item.group_name:
                    continue
                found = next((i for i in group.items if i.product_id == dispatch_item.product_id), None)
                if found:
                    group_name = group.group_name
                    break
            if found is None:
                unmatched.append({
                    "product_id": str(dispatch_item.product_id),
                    "group_name": dispatch_item.group_name,
                })
                continue
            matches.append((dispatch_item, group_name, found))

        if unmatched:
            raise ValidationFailed("Dispatch items do not match any order item", details=unmatched)
        return matches

    async def get_dispatch(self, dispatch_id: uuid.UUID) -> Optional[DispatchNote]:
        result = await self.db.execute(
            select(DispatchNote)
            .where(DispatchNote.id == dispatch_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_dispatch(self, dispatch_id: uuid.UUID) -> DispatchNote:
        dispatch = await self.get_dispatch(dispatch_id)
        if not dispatch:
            raise NotFound("Dispatch not found")
        return dispatch

    async def get_dispatches(
        self,
        status: Optional[str] = None,
        order_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[DispatchNote], int]:
        """Get paginated dispatch notes, newest first."""
        filters = []
        if status:
            filters.append(DispatchNote.status == status)
        if order_id:
            filters.append(DispatchNote.order_id == order_id)
        if date_from:
            filters.append(DispatchNote.dispatch_date >= date_from)
        if date_to:
            filters.append(DispatchNote.dispatch_date <= date_to)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    DispatchNote.dispatch_no.ilike(search_filter),
                    DispatchNote.order_no.ilike(search_filter),
                    DispatchNote.party_name.ilike(search_filter),
                )
            )

        stmt = select(DispatchNote)
        count_stmt = select(func.count(DispatchNote.id))
        if filters:
            stmt = stmt.where(and_(*filters))
            count_stmt = count_stmt.where(and_(*filters))

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(
            stmt.order_by(DispatchNote.dispatch_date.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def update_status(self, dispatch_id: uuid.UUID, new_status: str) -> DispatchNote:
        """Shipment status only; dispatched quantities on the order are not reversed."""
        dispatch = await self.require_dispatch(dispatch_id)
        old_status = dispatch.status
        validate_dispatch_transition(old_status, new_status)

        dispatch.status = new_status
        await self.db.commit()
        logger.info(f"Dispatch {dispatch.dispatch_no} status: {old_status} -> {new_status}")
        return await self.require_dispatch(dispatch_id)
