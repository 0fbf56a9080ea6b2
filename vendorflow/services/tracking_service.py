import logging
import uuid
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.exceptions import NotFound, InvalidAssignmentState, ValidationFailed
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.assignment import AssignmentStatus
from vendorflow.models.tracking import OrderTracking, TrackingStatus
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.status_machine import validate_tracking_transition


logger = logging.getLogger(__name__)


SUPPORTED_CARRIERS = [
    {"code": "ups", "name": "UPS", "tracking_url": "https://www.ups.com/track?tracknum={number}"},
    {"code": "usps", "name": "USPS", "tracking_url": "https://tools.usps.com/go/TrackConfirmAction?tLabels={number}"},
    {"code": "fedex", "name": "FedEx", "tracking_url": "https://www.fedex.com/fedextrack/?trknbr={number}"},
    {"code": "dhl", "name": "DHL", "tracking_url": "https://www.dhl.com/en/express/tracking.html?AWB={number}"},
    {"code": "canada_post", "name": "Canada Post", "tracking_url": "https://www.canadapost-postescanada.ca/track-reperage/en#/search?searchFor={number}"},
    {"code": "other", "name": "Other", "tracking_url": None},
]

# Assignment states in which a shipment can be registered
TRACKABLE_ASSIGNMENT_STATUSES = (
    AssignmentStatus.ACCEPTED.value,
    AssignmentStatus.IN_PROGRESS.value,
)


def build_tracking_url(carrier: str, tracking_number: str) -> Optional[str]:
    for entry in SUPPORTED_CARRIERS:
        if entry["code"] == carrier and entry["tracking_url"]:
            return entry["tracking_url"].format(number=tracking_number)
    return None


class TrackingService:
    """Carrier tracking numbers recorded against vendor assignments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.assignments = AssignmentService(db)
        self.activity = ActivityService(db)

    async def get_tracking(self, tracking_id: uuid.UUID) -> OrderTracking:
        tracking = await self.db.get(OrderTracking, tracking_id)
        if not tracking:
            raise NotFound("Tracking entry", tracking_id)
        return tracking

    async def get_order_tracking(self, order_id: uuid.UUID, vendor_id: Optional[uuid.UUID] = None) -> List[OrderTracking]:
        stmt = select(OrderTracking).where(OrderTracking.order_id == order_id)
        if vendor_id:
            vendor_assignment_ids = [a.id for a in await self.assignments.get_vendor_assignments(vendor_id)]
            stmt = stmt.where(OrderTracking.vendor_assignment_id.in_(vendor_assignment_ids))
        result = await self.db.execute(stmt.order_by(OrderTracking.created_at))
        return list(result.scalars().all())

    async def add_tracking(
        self,
        order_id: uuid.UUID,
        assignment_id: uuid.UUID,
        tracking_number: str,
        carrier: str,
        notes: Optional[str] = None,
        tracking_url: Optional[str] = None,
        status: str = TrackingStatus.SHIPPED.value,
        actor: Optional[Actor] = None,
    ) -> OrderTracking:
        """
        Register a tracking number for an accepted or in-progress assignment.

        A ``shipped`` entry is stamped with its shipped date.
        """
        status = getattr(status, "value", status)
        if status not in (TrackingStatus.PENDING.value, TrackingStatus.SHIPPED.value):
            raise ValidationFailed(
                f"New tracking entries must start as pending or shipped, not '{status}'",
                status=status,
            )

        assignment = await self.assignments.get_assignment(assignment_id)
        if assignment.order_id != order_id:
            raise NotFound(
                "Vendor assignment",
                assignment_id,
                message=f"Assignment {assignment_id} does not belong to order {order_id}",
            )
        self.assignments.ensure_can_act(actor, assignment)

        if assignment.status not in TRACKABLE_ASSIGNMENT_STATUSES:
            raise InvalidAssignmentState(
                f"Tracking can only be added to accepted or in-progress assignments "
                f"(assignment is {assignment.status})",
                vendor_assignment_id=assignment.id,
                status=assignment.status,
            )

        carrier = carrier.strip().lower()
        tracking = OrderTracking(
            order_id=order_id,
            vendor_assignment_id=assignment.id,
            tracking_number=tracking_number.strip(),
            carrier=carrier,
            tracking_url=tracking_url or build_tracking_url(carrier, tracking_number.strip()),
            status=status,
            shipped_date=utcnow() if status == TrackingStatus.SHIPPED.value else None,
            notes=notes,
            created_by=actor.id if actor else None,
        )
        self.db.add(tracking)
        await self.db.flush()

        await self.activity.log(
            action="ADD_TRACKING",
            entity_type="ORDER_TRACKING",
            entity_id=tracking.id,
            actor=actor,
            description=f"Added {carrier} tracking {tracking.tracking_number}",
            extra_data={"order_id": str(order_id), "vendor_assignment_id": str(assignment.id)},
        )
        await self.db.commit()

        logger.info(f"Tracking {tracking.tracking_number} ({carrier}) added to assignment {assignment.id}")
        return tracking

    async def update_tracking_status(
        self,
        tracking_id: uuid.UUID,
        status: str,
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> OrderTracking:
        """
        Apply a status change from a user or from carrier polling.

        Stamps shipped_date the first time the parcel ships and delivered_date
        on delivery.
        """
        status = getattr(status, "value", status)
        tracking = await self.get_tracking(tracking_id)
        if actor is not None:
            assignment = await self.assignments.get_assignment(tracking.vendor_assignment_id)
            self.assignments.ensure_can_act(actor, assignment)

        old_status = tracking.status
        validate_tracking_transition(old_status, status)

        now = utcnow()
        tracking.status = status
        if status in (TrackingStatus.SHIPPED.value, TrackingStatus.IN_TRANSIT.value) and not tracking.shipped_date:
            tracking.shipped_date = now
        if status == TrackingStatus.DELIVERED.value:
            tracking.delivered_date = now
        if notes:
            tracking.notes = notes

        await self.activity.log(
            action="UPDATE_TRACKING_STATUS",
            entity_type="ORDER_TRACKING",
            entity_id=tracking.id,
            actor=actor,
            description=f"Tracking {tracking.tracking_number}: {old_status} -> {status}",
            extra_data={"old_status": old_status, "new_status": status},
        )
        await self.db.commit()
        return tracking
