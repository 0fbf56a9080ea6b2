"""
Assignment Engine

Assigns orders to vendors, either whole (``full``) or split by item quantity
(``partial``), and moves assignments through their lifecycle.

Rules enforced here:
- a full assignment is the only non-cancelled assignment of its order
- partial quantities never exceed an item's remaining quantity (see
  ``SplittingService``); the check and the insert share one transaction
- every status change goes through ``status_machine`` and is written to the
  append-only order status history, together with the derived order status
  whenever it changes
"""
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Any, Iterable, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.config import settings
from vendorflow.core.exceptions import (
    NotFound,
    InvalidAssignmentState,
    InvalidAssignmentType,
    DuplicateFullAssignment,
    VendorInactive,
    Unauthorized,
    ValidationFailed,
)
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.order import Order, OrderItem, OrderStatusHistory, HistoryScope
from vendorflow.models.vendor import Vendor, VendorProductRate
from vendorflow.models.assignment import (
    VendorAssignment,
    OrderItemAssignment,
    AssignmentType,
    AssignmentStatus,
    ItemAssignmentStatus,
)
from vendorflow.services.status_machine import (
    derive_order_status,
    validate_assignment_transition,
    get_assignment_timestamp_field,
    get_transition_action,
)
from vendorflow.services.splitting_service import SplittingService, aggregate_requested
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.notification_service import NotificationService


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class AssignmentService:
    """Service for assigning orders to vendors and tracking assignment status."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.splitting = SplittingService(db)
        self.activity = ActivityService(db)
        self.notifier = notifier or NotificationService(db)

    # ==================== Lookups ====================

    async def get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.db.get(Order, order_id)
        if not order:
            raise NotFound("Order", order_id)
        return order

    async def get_vendor(self, vendor_id: uuid.UUID) -> Vendor:
        vendor = await self.db.get(Vendor, vendor_id)
        if not vendor:
            raise NotFound("Vendor", vendor_id)
        return vendor

    async def get_assignment(self, assignment_id: uuid.UUID) -> VendorAssignment:
        assignment = await self.db.get(VendorAssignment, assignment_id)
        if not assignment:
            raise NotFound("Vendor assignment", assignment_id)
        return assignment

    async def get_order_assignments(self, order_id: uuid.UUID) -> List[VendorAssignment]:
        result = await self.db.execute(
            select(VendorAssignment)
            .where(VendorAssignment.order_id == order_id)
            .order_by(VendorAssignment.assigned_at)
        )
        return list(result.scalars().all())

    async def get_vendor_assignments(
        self,
        vendor_id: uuid.UUID,
        status: Optional[str] = None,
    ) -> List[VendorAssignment]:
        stmt = select(VendorAssignment).where(VendorAssignment.vendor_id == vendor_id)
        if status:
            stmt = stmt.where(VendorAssignment.status == status)
        result = await self.db.execute(stmt.order_by(VendorAssignment.assigned_at.desc()))
        return list(result.scalars().all())

    async def get_status_history(self, order_id: uuid.UUID) -> List[OrderStatusHistory]:
        result = await self.db.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at, OrderStatusHistory.id)
        )
        return list(result.scalars().all())

    async def get_order_status(self, order_id: uuid.UUID) -> Dict[str, Any]:
        """Order with its derived business status, assignments and history."""
        order = await self.get_order(order_id)
        assignments = await self.get_order_assignments(order_id)
        history = await self.get_status_history(order_id)

        recorded = [h for h in history if h.scope == HistoryScope.ORDER.value]
        items = {}
        for assignment in assignments:
            items[assignment.id] = await self.splitting.get_item_assignments(assignment.id)

        return {
            "order": order,
            "business_status": derive_order_status(order, assignments),
            "recorded_status": recorded[-1].new_status if recorded else None,
            "assignments": assignments,
            "item_assignments": items,
            "history": history,
        }

    def ensure_can_act(self, actor: Optional[Actor], assignment: VendorAssignment) -> None:
        """Vendors may only act on their own assignments."""
        if actor is not None and not actor.owns_vendor(assignment.vendor_id):
            raise Unauthorized(
                "Assignment belongs to another vendor",
                vendor_assignment_id=assignment.id,
            )

    # ==================== Commission ====================

    async def get_commission_rates(self, vendor: Vendor, skus: Iterable[Optional[str]]) -> Dict[str, Decimal]:
        """Per-product overrides for ``vendor``, keyed by SKU."""
        skus = {sku for sku in skus if sku}
        if not skus:
            return {}
        result = await self.db.execute(
            select(VendorProductRate).where(
                VendorProductRate.vendor_id == vendor.id,
                VendorProductRate.sku.in_(skus),
            )
        )
        return {rate.sku: rate.commission_rate for rate in result.scalars().all()}

    async def calculate_commission(
        self,
        vendor: Vendor,
        lines: List[Tuple[OrderItem, Decimal]],
        residual: Decimal = Decimal("0"),
    ) -> Tuple[Decimal, Decimal]:
        """
        Commission for a set of (item, amount) lines.

        Each line uses the vendor's per-product override when one exists,
        else the vendor default. ``residual`` (order total not attributed to
        items, e.g. shipping) always uses the vendor default.

        Returns (commission_amount, effective_rate).
        """
        overrides = await self.get_commission_rates(vendor, (item.sku for item, _ in lines))
        default_rate = Decimal(vendor.commission_rate or 0)

        commission = Decimal("0")
        base = Decimal("0")
        for item, amount in lines:
            rate = overrides.get(item.sku, default_rate)
            commission += Decimal(amount) * rate / HUNDRED
            base += Decimal(amount)
        commission += Decimal(residual) * default_rate / HUNDRED
        base += Decimal(residual)

        effective_rate = _money(commission * HUNDRED / base) if base else default_rate
        return _money(commission), effective_rate

    async def recalculate_commission(self, assignment: VendorAssignment) -> VendorAssignment:
        """Recompute commission from the assignment's active item allocations."""
        vendor = await self.get_vendor(assignment.vendor_id)
        item_assignments = await self.splitting.get_active_item_assignments(assignment.id)
        lines = []
        for item_assignment in item_assignments:
            item = await self.db.get(OrderItem, item_assignment.order_item_id)
            lines.append((item, item_assignment.assigned_amount))

        residual = Decimal("0")
        if assignment.assignment_type == AssignmentType.FULL.value:
            order = await self.get_order(assignment.order_id)
            residual = Decimal(order.total_amount) - sum((item.total_price for item in order.items), Decimal("0"))

        assignment.commission_amount, assignment.commission_rate = await self.calculate_commission(
            vendor, lines, residual
        )
        await self.db.flush()
        return assignment

    # ==================== Assignment ====================

    async def assign_vendor(
        self,
        order_id: uuid.UUID,
        vendor_id: uuid.UUID,
        assignment_type: str,
        items: Optional[Iterable[Tuple[uuid.UUID, int]]] = None,
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> VendorAssignment:
        """
        Assign an order (full) or some of its item quantities (partial) to a vendor.

        Raises:
            NotFound: order, vendor or item does not exist
            InvalidAssignmentState: the order is cancelled
            VendorInactive: the vendor is not approved
            InvalidAssignmentType: type is neither full nor partial
            DuplicateFullAssignment: full/partial exclusivity would break
            OverAllocation: a quantity exceeds the item's remaining quantity
        """
        assignment_type = getattr(assignment_type, "value", assignment_type)
        if assignment_type not in (AssignmentType.FULL.value, AssignmentType.PARTIAL.value):
            raise InvalidAssignmentType(
                f"Invalid assignment type '{assignment_type}'. Allowed: full, partial",
                assignment_type=assignment_type,
            )

        order = await self.get_order(order_id)
        if order.is_cancelled:
            raise InvalidAssignmentState(
                f"Order #{order.order_number} is cancelled",
                order_id=order.id,
                order_status=order.order_status,
            )

        vendor = await self.get_vendor(vendor_id)
        if not vendor.is_active:
            raise VendorInactive(
                f"Vendor {vendor.company_name} is not active (status: {vendor.status})",
                vendor_id=vendor.id,
                vendor_status=vendor.status,
            )

        requested: Dict[uuid.UUID, int] = {}
        if assignment_type == AssignmentType.PARTIAL.value:
            if not items:
                raise ValidationFailed("Partial assignment requires at least one item")
            requested = aggregate_requested(items)

        # Serializes concurrent assignments on this order until commit
        locked_items = await self.splitting.lock_order_items(order.id)

        existing = await self.get_order_assignments(order.id)
        active = [a for a in existing if a.status != AssignmentStatus.CANCELLED.value]
        if assignment_type == AssignmentType.FULL.value and active:
            raise DuplicateFullAssignment(
                f"Order #{order.order_number} already has {len(active)} active assignment(s)",
                order_id=order.id,
            )
        if any(a.assignment_type == AssignmentType.FULL.value for a in active):
            raise DuplicateFullAssignment(
                f"Order #{order.order_number} is fully assigned to one vendor",
                order_id=order.id,
            )

        old_order_status = derive_order_status(order, existing)

        if assignment_type == AssignmentType.FULL.value:
            lines = [(item, item.quantity, _money(item.total_price)) for item in locked_items.values()]
            residual = Decimal(order.total_amount) - sum((item.total_price for item in locked_items.values()), Decimal("0"))
        else:
            await self.splitting.check_allocation(order, locked_items, requested)
            lines = [
                (locked_items[item_id], quantity, _money(Decimal(locked_items[item_id].unit_price) * quantity))
                for item_id, quantity in requested.items()
            ]
            residual = Decimal("0")

        commission_amount, commission_rate = await self.calculate_commission(
            vendor, [(item, amount) for item, _, amount in lines], residual
        )

        now = utcnow()
        assignment = VendorAssignment(
            order_id=order.id,
            vendor_id=vendor.id,
            assignment_type=assignment_type,
            status=AssignmentStatus.ASSIGNED.value,
            commission_rate=commission_rate,
            commission_amount=commission_amount,
            notes=notes,
            assigned_by=actor.id if actor else None,
            assigned_at=now,
            status_changed_at=now,
        )
        self.db.add(assignment)
        await self.db.flush()

        for item, quantity, amount in lines:
            self.db.add(OrderItemAssignment(
                vendor_assignment_id=assignment.id,
                order_item_id=item.id,
                quantity=quantity,
                assigned_amount=amount,
                status=ItemAssignmentStatus.ASSIGNED.value,
            ))

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            vendor_assignment_id=assignment.id,
            scope=HistoryScope.ASSIGNMENT.value,
            old_status=None,
            new_status=assignment.status,
            changed_by=actor.id if actor else None,
            notes=f"Assigned to {vendor.company_name} ({assignment_type})",
        ))
        new_order_status = derive_order_status(order, existing + [assignment])
        self.record_order_status(order, old_order_status, new_order_status, actor, assignment.id)

        await self.activity.log(
            action="ASSIGN_VENDOR",
            entity_type="VENDOR_ASSIGNMENT",
            entity_id=assignment.id,
            actor=actor,
            description=f"Order #{order.order_number} assigned to {vendor.company_name} ({assignment_type})",
            extra_data={
                "order_id": str(order.id),
                "vendor_id": str(vendor.id),
                "assignment_type": assignment_type,
                "items": [
                    {"order_item_id": str(item.id), "quantity": quantity}
                    for item, quantity, _ in lines
                ],
                "commission_amount": str(commission_amount),
            },
        )
        await self.db.commit()

        logger.info(
            f"Order {order.order_number} assigned to vendor {vendor.id} "
            f"({assignment_type}, commission {commission_amount})"
        )

        await self.notifier.dispatch(
            recipient_type="vendor",
            recipient=vendor.email,
            template="vendor_assignment_created",
            payload={
                "order_number": order.order_number,
                "vendor_assignment_id": str(assignment.id),
                "assignment_type": assignment_type,
            },
        )
        await self.db.commit()
        return assignment

    async def update_assignment_status(
        self,
        assignment_id: uuid.UUID,
        new_status: str,
        actor: Optional[Actor] = None,
        notes: Optional[str] = None,
    ) -> VendorAssignment:
        """
        Move an assignment along its lifecycle.

        Cancelling releases the assignment's item quantities; completing
        marks its items completed. Order-level status changes are recorded
        in history.
        """
        new_status = getattr(new_status, "value", new_status)
        assignment = await self.get_assignment(assignment_id)
        self.ensure_can_act(actor, assignment)

        old_status = assignment.status
        validate_assignment_transition(old_status, new_status)

        order = await self.get_order(assignment.order_id)
        siblings = await self.get_order_assignments(order.id)
        old_order_status = derive_order_status(order, siblings)

        now = utcnow()
        assignment.status = new_status
        assignment.status_changed_at = now
        timestamp_field = get_assignment_timestamp_field(new_status)
        if timestamp_field:
            setattr(assignment, timestamp_field, now)

        if new_status in (AssignmentStatus.CANCELLED.value, AssignmentStatus.COMPLETED.value):
            item_status = (
                ItemAssignmentStatus.CANCELLED.value
                if new_status == AssignmentStatus.CANCELLED.value
                else ItemAssignmentStatus.COMPLETED.value
            )
            for item_assignment in await self.splitting.get_active_item_assignments(assignment.id):
                item_assignment.status = item_status

        self.db.add(OrderStatusHistory(
            order_id=order.id,
            vendor_assignment_id=assignment.id,
            scope=HistoryScope.ASSIGNMENT.value,
            old_status=old_status,
            new_status=new_status,
            changed_by=actor.id if actor else None,
            notes=notes or get_transition_action(old_status, new_status),
        ))

        # siblings holds the same identity-mapped instance we just mutated
        new_order_status = derive_order_status(order, siblings)
        self.record_order_status(order, old_order_status, new_order_status, actor, assignment.id)

        await self.activity.log(
            action="UPDATE_ASSIGNMENT_STATUS",
            entity_type="VENDOR_ASSIGNMENT",
            entity_id=assignment.id,
            actor=actor,
            description=f"{get_transition_action(old_status, new_status)}: {old_status} -> {new_status}",
            extra_data={"old_status": old_status, "new_status": new_status, "notes": notes},
        )
        await self.db.commit()

        logger.info(f"Assignment {assignment.id} moved {old_status} -> {new_status}")

        if actor is not None and actor.is_vendor:
            recipient_type, recipient = "admin", settings.ADMIN_NOTIFICATION_EMAIL
        else:
            vendor = await self.get_vendor(assignment.vendor_id)
            recipient_type, recipient = "vendor", vendor.email
        await self.notifier.dispatch(
            recipient_type=recipient_type,
            recipient=recipient,
            template="assignment_status_changed",
            payload={
                "order_number": order.order_number,
                "vendor_assignment_id": str(assignment.id),
                "status": new_status,
                "notes": notes,
            },
        )
        await self.db.commit()
        return assignment

    def record_order_status(
        self,
        order: Order,
        old_status: str,
        new_status: str,
        actor: Optional[Actor],
        assignment_id: Optional[uuid.UUID] = None,
    ) -> None:
        if old_status == new_status:
            return
        self.db.add(OrderStatusHistory(
            order_id=order.id,
            vendor_assignment_id=assignment_id,
            scope=HistoryScope.ORDER.value,
            old_status=old_status,
            new_status=new_status,
            changed_by=actor.id if actor else None,
            notes="Derived order status changed",
        ))
