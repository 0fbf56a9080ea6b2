"""
Item Splitting Ledger

Tracks how much of each order item is allocated to which vendor assignment.

    remaining(item) = item.quantity - sum(quantity of non-cancelled item assignments)

Allocation checks run under ``SELECT ... FOR UPDATE`` on the order's item rows
(locked in id order), and the new item assignments are inserted in the same
transaction, so concurrent partial assignments against one item serialize
and can never over-allocate it. Cancelled rows stop counting immediately.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, List, Iterable, Tuple, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.exceptions import (
    NotFound,
    OverAllocation,
    InvalidAssignmentState,
    ValidationFailed,
)
from vendorflow.core.security import Actor
from vendorflow.models.order import Order, OrderItem
from vendorflow.models.assignment import (
    VendorAssignment,
    OrderItemAssignment,
    AssignmentType,
    ItemAssignmentStatus,
)
from vendorflow.models.vendor import Vendor
from vendorflow.services.status_machine import is_terminal
from vendorflow.services.activity_service import ActivityService


logger = logging.getLogger(__name__)


def aggregate_requested(items: Iterable[Tuple[uuid.UUID, int]]) -> Dict[uuid.UUID, int]:
    """Sum requested quantities per order item, rejecting non-positive ones."""
    requested: Dict[uuid.UUID, int] = defaultdict(int)
    for order_item_id, quantity in items:
        if quantity is None or quantity <= 0:
            raise ValidationFailed(
                f"quantity must be greater than 0 for item {order_item_id}",
                order_item_id=order_item_id,
                quantity=quantity,
            )
        requested[order_item_id] += quantity
    return dict(requested)


class SplittingService:
    """Quantity ledger for order items split across vendors."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Ledger ====================

    async def lock_order_items(self, order_id: uuid.UUID) -> Dict[uuid.UUID, OrderItem]:
        """Row-lock every item of an order for the rest of the transaction."""
        result = await self.db.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
            .with_for_update()
        )
        return {item.id: item for item in result.scalars().all()}

    async def allocated_quantities(self, order_item_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, int]:
        """Active (non-cancelled) allocated quantity per order item."""
        ids = list(order_item_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(
                OrderItemAssignment.order_item_id,
                func.coalesce(func.sum(OrderItemAssignment.quantity), 0),
            )
            .where(
                OrderItemAssignment.order_item_id.in_(ids),
                OrderItemAssignment.status != ItemAssignmentStatus.CANCELLED.value,
            )
            .group_by(OrderItemAssignment.order_item_id)
        )
        allocated = {item_id: 0 for item_id in ids}
        for item_id, quantity in result.all():
            allocated[item_id] = int(quantity)
        return allocated

    async def remaining_quantity(self, order_item_id: uuid.UUID) -> int:
        item = await self.db.get(OrderItem, order_item_id)
        if not item:
            raise NotFound("Order item", order_item_id)
        allocated = await self.allocated_quantities([order_item_id])
        return item.quantity - allocated[order_item_id]

    async def check_allocation(
        self,
        order: Order,
        locked_items: Dict[uuid.UUID, OrderItem],
        requested: Dict[uuid.UUID, int],
    ) -> Dict[uuid.UUID, int]:
        """
        Verify every requested quantity fits in the item's remaining quantity.

        ``locked_items`` must come from ``lock_order_items`` in the same
        transaction. Returns the remaining quantity per requested item.
        """
        for order_item_id in requested:
            if order_item_id not in locked_items:
                raise NotFound(
                    "Order item",
                    order_item_id,
                    message=f"Order item {order_item_id} does not belong to order {order.order_number}",
                )

        allocated = await self.allocated_quantities(requested.keys())
        remaining = {}
        for order_item_id, quantity in requested.items():
            left = locked_items[order_item_id].quantity - allocated[order_item_id]
            if quantity > left:
                raise OverAllocation(order_item_id, quantity, left)
            remaining[order_item_id] = left
        return remaining

    async def get_active_item_assignments(self, vendor_assignment_id: uuid.UUID) -> List[OrderItemAssignment]:
        result = await self.db.execute(
            select(OrderItemAssignment)
            .where(
                OrderItemAssignment.vendor_assignment_id == vendor_assignment_id,
                OrderItemAssignment.status != ItemAssignmentStatus.CANCELLED.value,
            )
            .order_by(OrderItemAssignment.created_at)
        )
        return list(result.scalars().all())

    async def get_item_assignments(self, vendor_assignment_id: uuid.UUID) -> List[OrderItemAssignment]:
        result = await self.db.execute(
            select(OrderItemAssignment)
            .where(OrderItemAssignment.vendor_assignment_id == vendor_assignment_id)
            .order_by(OrderItemAssignment.created_at)
        )
        return list(result.scalars().all())

    # ==================== Order splitting views ====================

    async def get_order_splitting(self, order_id: uuid.UUID) -> Dict[str, Any]:
        """Per-item allocation summary for one order."""
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFound("Order", order_id)

        item_ids = [item.id for item in order.items]
        allocated = await self.allocated_quantities(item_ids)

        allocations: Dict[uuid.UUID, List[Dict[str, Any]]] = defaultdict(list)
        if item_ids:
            result = await self.db.execute(
                select(OrderItemAssignment, VendorAssignment, Vendor.company_name)
                .join(VendorAssignment, OrderItemAssignment.vendor_assignment_id == VendorAssignment.id)
                .join(Vendor, VendorAssignment.vendor_id == Vendor.id)
                .where(
                    OrderItemAssignment.order_item_id.in_(item_ids),
                    OrderItemAssignment.status != ItemAssignmentStatus.CANCELLED.value,
                )
                .order_by(OrderItemAssignment.created_at)
            )
            for item_assignment, assignment, company_name in result.all():
                allocations[item_assignment.order_item_id].append({
                    "item_assignment_id": item_assignment.id,
                    "vendor_assignment_id": assignment.id,
                    "vendor_id": assignment.vendor_id,
                    "vendor_name": company_name,
                    "assignment_type": assignment.assignment_type,
                    "assignment_status": assignment.status,
                    "quantity": item_assignment.quantity,
                    "assigned_amount": item_assignment.assigned_amount,
                    "status": item_assignment.status,
                })

        items = []
        for item in order.items:
            assigned = allocated.get(item.id, 0)
            items.append({
                "order_item_id": item.id,
                "product_name": item.product_name,
                "sku": item.sku,
                "quantity": item.quantity,
                "assigned_quantity": assigned,
                "remaining_quantity": item.quantity - assigned,
                "is_fully_assigned": assigned >= item.quantity,
                "allocations": allocations.get(item.id, []),
            })

        return {
            "order_id": order.id,
            "order_number": order.order_number,
            "items": items,
            "is_fully_assigned": all(i["is_fully_assigned"] for i in items) if items else False,
        }

    async def get_splitting_analytics(self, since: Optional[datetime] = None) -> Dict[str, Any]:
        """Aggregate view of active partial assignments across orders."""
        stmt = (
            select(OrderItemAssignment, VendorAssignment, Vendor.company_name)
            .join(VendorAssignment, OrderItemAssignment.vendor_assignment_id == VendorAssignment.id)
            .join(Vendor, VendorAssignment.vendor_id == Vendor.id)
            .where(
                VendorAssignment.assignment_type == AssignmentType.PARTIAL.value,
                OrderItemAssignment.status != ItemAssignmentStatus.CANCELLED.value,
            )
        )
        if since:
            stmt = stmt.where(VendorAssignment.assigned_at >= since)
        result = await self.db.execute(stmt)
        rows = result.all()

        orders = set()
        total_amount = Decimal("0")
        total_quantity = 0
        distribution: Dict[uuid.UUID, Dict[str, Any]] = {}
        for item_assignment, assignment, company_name in rows:
            orders.add(assignment.order_id)
            total_amount += item_assignment.assigned_amount
            total_quantity += item_assignment.quantity
            entry = distribution.setdefault(assignment.vendor_id, {
                "vendor_id": assignment.vendor_id,
                "vendor_name": company_name,
                "assignments": set(),
                "total_quantity": 0,
                "total_amount": Decimal("0"),
            })
            entry["assignments"].add(assignment.id)
            entry["total_quantity"] += item_assignment.quantity
            entry["total_amount"] += item_assignment.assigned_amount

        vendor_distribution = sorted(
            (
                {**entry, "assignments": len(entry["assignments"])}
                for entry in distribution.values()
            ),
            key=lambda e: e["total_amount"],
            reverse=True,
        )

        return {
            "split_orders": len(orders),
            "vendors_involved": len(distribution),
            "total_split_amount": total_amount,
            "avg_split_quantity": round(total_quantity / len(rows), 2) if rows else 0,
            "vendor_distribution": vendor_distribution,
        }

    # ==================== Item assignment removal ====================

    async def remove_item_assignment(
        self,
        item_assignment_id: uuid.UUID,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        """
        Cancel one item allocation and release its quantity.

        The parent's commission is recalculated; a parent left without any
        active item is cancelled through the regular status transition.
        A full parent that keeps other items becomes a partial one, so the
        released quantity can be assigned to another vendor.
        """
        from vendorflow.services.assignment_service import AssignmentService

        item_assignment = await self.db.get(OrderItemAssignment, item_assignment_id)
        if not item_assignment:
            raise NotFound("Item assignment", item_assignment_id)
        if item_assignment.status == ItemAssignmentStatus.CANCELLED.value:
            raise InvalidAssignmentState(
                "Item assignment is already cancelled",
                item_assignment_id=item_assignment_id,
            )

        assignment_service = AssignmentService(self.db)
        parent = await assignment_service.get_assignment(item_assignment.vendor_assignment_id)
        if is_terminal(parent.status):
            raise InvalidAssignmentState(
                f"Cannot remove items from a {parent.status} assignment",
                vendor_assignment_id=parent.id,
                status=parent.status,
            )

        item_assignment.status = ItemAssignmentStatus.CANCELLED.value
        await self.db.flush()

        remaining_items = await self.get_active_item_assignments(parent.id)
        converted = bool(remaining_items) and parent.assignment_type == AssignmentType.FULL.value
        if converted:
            parent.assignment_type = AssignmentType.PARTIAL.value
            logger.info(f"Assignment {parent.id} converted from full to partial")
        await ActivityService(self.db).log(
            action="REMOVE_ITEM_ASSIGNMENT",
            entity_type="ORDER_ITEM_ASSIGNMENT",
            entity_id=item_assignment.id,
            actor=actor,
            description=f"Released {item_assignment.quantity} unit(s) of item {item_assignment.order_item_id}",
            extra_data={
                "vendor_assignment_id": str(parent.id),
                "order_item_id": str(item_assignment.order_item_id),
                "quantity": item_assignment.quantity,
                "converted_to_partial": converted,
            },
        )

        if not remaining_items:
            logger.info(f"Assignment {parent.id} has no items left; cancelling")
            parent = await assignment_service.update_assignment_status(
                parent.id,
                "cancelled",
                actor=actor,
                notes="All item assignments removed",
            )
            return {"item_assignment": item_assignment, "assignment": parent, "assignment_cancelled": True}

        await assignment_service.recalculate_commission(parent)
        await self.db.commit()
        return {"item_assignment": item_assignment, "assignment": parent, "assignment_cancelled": False}
