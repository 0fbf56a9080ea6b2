"""
Tracking API Endpoints

Carrier tracking numbers for vendor shipments.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from vendorflow.api.deps import DB, CurrentActor
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.tracking import (
    TrackingCreate,
    TrackingStatusUpdate,
    TrackingResponse,
    CarrierResponse,
)
from vendorflow.services.tracking_service import TrackingService, SUPPORTED_CARRIERS

router = APIRouter()


@router.get("/carriers", response_model=ApiResponse[List[CarrierResponse]])
async def list_carriers(actor: CurrentActor):
    return ok(SUPPORTED_CARRIERS)


@router.post("", response_model=ApiResponse[TrackingResponse], status_code=status.HTTP_201_CREATED)
async def add_tracking(data: TrackingCreate, db: DB, actor: CurrentActor):
    """Register a tracking number against an accepted or in-progress assignment."""
    tracking = await TrackingService(db).add_tracking(
        data.order_id,
        data.vendor_assignment_id,
        data.tracking_number,
        data.carrier,
        notes=data.notes,
        tracking_url=data.tracking_url,
        status=data.status.value,
        actor=actor,
    )
    return ok(TrackingResponse.model_validate(tracking), message="Tracking added")


@router.put("/{tracking_id}/status", response_model=ApiResponse[TrackingResponse])
async def update_tracking_status(
    tracking_id: UUID,
    data: TrackingStatusUpdate,
    db: DB,
    actor: CurrentActor,
):
    tracking = await TrackingService(db).update_tracking_status(
        tracking_id,
        data.status.value,
        notes=data.notes,
        actor=actor,
    )
    return ok(TrackingResponse.model_validate(tracking))


@router.get("/order/{order_id}", response_model=ApiResponse[List[TrackingResponse]])
async def get_order_tracking(order_id: UUID, db: DB, actor: CurrentActor):
    """Tracking entries of an order. Vendors only get their own shipments."""
    entries = await TrackingService(db).get_order_tracking(
        order_id,
        vendor_id=actor.vendor_id if actor.is_vendor else None,
    )
    return ok([TrackingResponse.model_validate(t) for t in entries])
