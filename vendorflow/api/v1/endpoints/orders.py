"""
Orders API Endpoints

Order ingestion, vendor assignment and the assignment lifecycle.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from vendorflow.api.deps import DB, CurrentActor, AdminActor, VendorActor
from vendorflow.core.exceptions import Unauthorized
from vendorflow.models.assignment import AssignmentStatus, VendorAssignment
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.order import (
    OrderIngest,
    OrderResponse,
    OrderStatusResponse,
    AssignVendorRequest,
    AssignmentStatusUpdate,
    AssignmentResponse,
    AssignmentDetailResponse,
    ItemAssignmentResponse,
    StatusHistoryResponse,
)
from vendorflow.schemas.proof import ProductionStatusUpdate, ProductionStatusResponse
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.order_service import OrderService
from vendorflow.services.production_status_service import ProductionStatusService
from vendorflow.services.splitting_service import SplittingService

logger = logging.getLogger(__name__)
router = APIRouter()


async def _assignment_detail(db, assignment: VendorAssignment) -> AssignmentDetailResponse:
    items = await SplittingService(db).get_item_assignments(assignment.id)
    detail = AssignmentDetailResponse.model_validate(assignment)
    detail.items = [ItemAssignmentResponse.model_validate(i) for i in items]
    return detail


# ==================== Ingestion ====================

@router.post(
    "/stores/{store_id}/ingest",
    response_model=ApiResponse[OrderResponse],
    status_code=status.HTTP_201_CREATED,
)
async def ingest_order(
    store_id: UUID,
    payload: OrderIngest,
    db: DB,
    actor: AdminActor,
):
    """Create or refresh an order delivered by a storefront integration."""
    order = await OrderService(db).ingest_order(store_id, payload, actor=actor)
    return ok(OrderResponse.model_validate(order))


# ==================== Vendor views ====================

@router.get("/vendor/assignments", response_model=ApiResponse[List[AssignmentDetailResponse]])
async def list_my_assignments(
    db: DB,
    actor: VendorActor,
    status_filter: Optional[AssignmentStatus] = Query(None, alias="status"),
):
    """Assignments of the calling vendor, newest first."""
    assignments = await AssignmentService(db).get_vendor_assignments(
        actor.vendor_id,
        status=status_filter.value if status_filter else None,
    )
    return ok([await _assignment_detail(db, a) for a in assignments])


# ==================== Assignment lifecycle ====================

@router.put("/assignments/{assignment_id}/status", response_model=ApiResponse[AssignmentResponse])
async def update_assignment_status(
    assignment_id: UUID,
    data: AssignmentStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    """Move an assignment along assigned -> accepted -> in_progress -> completed, or cancel it."""
    assignment = await AssignmentService(db).update_assignment_status(
        assignment_id,
        data.status.value,
        actor=actor,
        notes=data.notes,
    )
    return ok(AssignmentResponse.model_validate(assignment), message=f"Assignment {assignment.status}")


@router.get(
    "/assignments/{assignment_id}/production-status",
    response_model=ApiResponse[ProductionStatusResponse],
)
async def get_production_status(assignment_id: UUID, db: DB, actor: CurrentActor):
    production_status = await ProductionStatusService(db).get_production_status(assignment_id, actor=actor)
    await db.commit()
    return ok(ProductionStatusResponse.model_validate(production_status))


@router.put(
    "/assignments/{assignment_id}/production-status",
    response_model=ApiResponse[ProductionStatusResponse],
)
async def update_production_status(
    assignment_id: UUID,
    data: ProductionStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    production_status = await ProductionStatusService(db).update_production_status(
        assignment_id,
        data.field,
        data.value,
        blocked_reason=data.blocked_reason,
        actor=actor,
    )
    return ok(ProductionStatusResponse.model_validate(production_status))


# ==================== Orders ====================

@router.post(
    "/{order_id}/assign-vendor",
    response_model=ApiResponse[AssignmentDetailResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_vendor(
    order_id: UUID,
    data: AssignVendorRequest,
    db: DB,
    actor: AdminActor,
):
    """Assign the whole order, or some item quantities, to a vendor."""
    assignment = await AssignmentService(db).assign_vendor(
        order_id,
        data.vendor_id,
        data.assignment_type.value,
        items=[(i.order_item_id, i.quantity) for i in data.items or []],
        notes=data.notes,
        actor=actor,
    )
    return ok(await _assignment_detail(db, assignment), message="Vendor assigned")


@router.get("/{order_id}/assignments", response_model=ApiResponse[List[AssignmentDetailResponse]])
async def list_order_assignments(order_id: UUID, db: DB, actor: AdminActor):
    service = AssignmentService(db)
    await service.get_order(order_id)
    assignments = await service.get_order_assignments(order_id)
    return ok([await _assignment_detail(db, a) for a in assignments])


@router.get("/{order_id}", response_model=ApiResponse[OrderStatusResponse])
async def get_order_status(order_id: UUID, db: DB, actor: CurrentActor):
    """
    Order with its derived business status, assignments and status history.

    Vendors only see orders they are assigned to, and only their own
    assignments on them.
    """
    summary = await AssignmentService(db).get_order_status(order_id)
    assignments = summary["assignments"]
    history = summary["history"]
    if actor.is_vendor:
        assignments = [a for a in assignments if a.vendor_id == actor.vendor_id]
        if not assignments:
            raise Unauthorized("Order is not assigned to this vendor", order_id=order_id)
        own = {a.id for a in assignments}
        history = [h for h in history if h.vendor_assignment_id is None or h.vendor_assignment_id in own]

    details = []
    for assignment in assignments:
        detail = AssignmentDetailResponse.model_validate(assignment)
        detail.items = [
            ItemAssignmentResponse.model_validate(i)
            for i in summary["item_assignments"].get(assignment.id, [])
        ]
        details.append(detail)

    return ok(OrderStatusResponse(
        order=OrderResponse.model_validate(summary["order"]),
        business_status=summary["business_status"],
        recorded_status=summary["recorded_status"],
        assignments=details,
        history=[StatusHistoryResponse.model_validate(h) for h in history],
    ))
