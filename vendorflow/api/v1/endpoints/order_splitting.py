"""
Order Splitting API Endpoints

Partial assignment of item quantities across vendors.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from vendorflow.api.deps import DB, AdminActor
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.order import (
    PartialAssignRequest,
    AssignmentDetailResponse,
    AssignmentResponse,
    ItemAssignmentResponse,
    OrderSplittingResponse,
    RemainingQuantityResponse,
    RemoveItemAssignmentResponse,
    SplittingAnalyticsResponse,
)
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.splitting_service import SplittingService

router = APIRouter()


@router.post(
    "/assign-partial",
    response_model=ApiResponse[AssignmentDetailResponse],
    status_code=status.HTTP_201_CREATED,
)
async def assign_partial(data: PartialAssignRequest, db: DB, actor: AdminActor):
    """Assign specific item quantities of an order to a vendor."""
    assignment = await AssignmentService(db).assign_vendor(
        data.order_id,
        data.vendor_id,
        "partial",
        items=[(i.order_item_id, i.quantity) for i in data.items],
        notes=data.notes,
        actor=actor,
    )
    items = await SplittingService(db).get_item_assignments(assignment.id)
    detail = AssignmentDetailResponse.model_validate(assignment)
    detail.items = [ItemAssignmentResponse.model_validate(i) for i in items]
    return ok(detail, message="Items assigned")


@router.get("/orders/{order_id}", response_model=ApiResponse[OrderSplittingResponse])
async def get_order_splitting(order_id: UUID, db: DB, actor: AdminActor):
    return ok(await SplittingService(db).get_order_splitting(order_id))


@router.get("/items/{order_item_id}/remaining", response_model=ApiResponse[RemainingQuantityResponse])
async def get_remaining_quantity(order_item_id: UUID, db: DB, actor: AdminActor):
    remaining = await SplittingService(db).remaining_quantity(order_item_id)
    return ok({"order_item_id": order_item_id, "remaining_quantity": remaining})


@router.delete("/item-assignment/{item_assignment_id}", response_model=ApiResponse[RemoveItemAssignmentResponse])
async def remove_item_assignment(item_assignment_id: UUID, db: DB, actor: AdminActor):
    """Release one item allocation. An assignment left empty is cancelled."""
    result = await SplittingService(db).remove_item_assignment(item_assignment_id, actor=actor)
    return ok(RemoveItemAssignmentResponse(
        item_assignment=ItemAssignmentResponse.model_validate(result["item_assignment"]),
        assignment=AssignmentResponse.model_validate(result["assignment"]),
        assignment_cancelled=result["assignment_cancelled"],
    ))


@router.get("/analytics", response_model=ApiResponse[SplittingAnalyticsResponse])
async def get_splitting_analytics(
    db: DB,
    actor: AdminActor,
    since: Optional[datetime] = Query(None),
):
    return ok(await SplittingService(db).get_splitting_analytics(since=since))
