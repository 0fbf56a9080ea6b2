import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.exceptions import NotFound, ValidationFailed
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.order import Order, OrderItem
from vendorflow.models.store import Store
from vendorflow.schemas.order import OrderIngest
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.status_machine import derive_order_status

logger = logging.getLogger(__name__)

# Fields a storefront may change after the first ingest
MIRRORED_STATUS_FIELDS = ("order_status", "fulfillment_status", "payment_status")


class OrderService:
    """Storefront order ingestion and lookup."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFound("Order", order_id)
        return order

    async def get_by_external_id(self, store_id: uuid.UUID, external_order_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order).where(
                Order.store_id == store_id,
                Order.external_order_id == external_order_id,
            )
        )
        return result.scalar_one_or_none()

    async def ingest_order(
        self,
        store_id: uuid.UUID,
        payload: Union[OrderIngest, Dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> Order:
        """
        Upsert an order by (store_id, external_order_id).

        A first ingest stores the order with its items. A repeat ingest only
        mirrors the store-reported statuses; items and amounts are immutable.
        """
        if isinstance(payload, dict):
            payload = OrderIngest.model_validate(payload)

        store = await self.db.get(Store, store_id)
        if not store:
            raise NotFound("Store", store_id)

        for item in payload.items:
            if item.quantity <= 0:
                raise ValidationFailed(
                    f"Item '{item.product_name}' quantity must be positive, got {item.quantity}",
                    external_item_id=item.external_item_id,
                    quantity=item.quantity,
                )

        order = await self.get_by_external_id(store_id, payload.external_order_id)
        if order is not None:
            return await self._mirror_statuses(order, payload, actor)

        if not payload.items:
            raise ValidationFailed("Order must contain at least one item")

        items = [
            OrderItem(
                external_item_id=item.external_item_id,
                product_name=item.product_name,
                sku=item.sku,
                variant_title=item.variant_title,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price if item.total_price is not None else item.unit_price * item.quantity,
                product_data=item.product_data,
            )
            for item in payload.items
        ]
        total = payload.total_amount
        if total is None:
            total = sum((item.total_price for item in items), Decimal("0"))

        order = Order(
            store_id=store_id,
            external_order_id=payload.external_order_id,
            order_number=payload.order_number,
            customer_email=payload.customer_email,
            customer_name=payload.customer_name,
            customer_phone=payload.customer_phone,
            billing_address=payload.billing_address,
            shipping_address=payload.shipping_address,
            total_amount=total,
            currency=payload.currency,
            order_status=payload.order_status,
            fulfillment_status=payload.fulfillment_status,
            payment_status=payload.payment_status,
            notes=payload.notes,
            order_date=payload.order_date or utcnow(),
            items=items,
        )
        self.db.add(order)
        await self.db.flush()

        await ActivityService(self.db).log(
            action="INGEST_ORDER",
            entity_type="ORDER",
            entity_id=order.id,
            actor=actor,
            description=f"Order #{order.order_number} ingested from {store.name}",
            extra_data={"store_id": str(store_id), "external_order_id": order.external_order_id},
        )
        await self.db.commit()
        logger.info(f"Ingested order {order.order_number} from store {store_id}")
        return order

    async def _mirror_statuses(self, order: Order, payload: OrderIngest, actor: Optional[Actor]) -> Order:
        changes = {
            field: getattr(payload, field)
            for field in MIRRORED_STATUS_FIELDS
            if getattr(payload, field) is not None and getattr(payload, field) != getattr(order, field)
        }
        if not changes:
            return order

        assignments = AssignmentService(self.db)
        existing = await assignments.get_order_assignments(order.id)
        old_status = derive_order_status(order, existing)
        for field, value in changes.items():
            setattr(order, field, value)
        assignments.record_order_status(order, old_status, derive_order_status(order, existing), actor)

        await ActivityService(self.db).log(
            action="SYNC_ORDER_STATUS",
            entity_type="ORDER",
            entity_id=order.id,
            actor=actor,
            description=f"Order #{order.order_number} store statuses updated",
            extra_data=changes,
        )
        await self.db.commit()
        return order
