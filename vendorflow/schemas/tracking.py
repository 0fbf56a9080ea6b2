"""Pydantic schemas for shipment tracking."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from vendorflow.models.tracking import TrackingStatus
from vendorflow.schemas.base import BaseResponseSchema, BaseCreateSchema


class TrackingCreate(BaseCreateSchema):
    order_id: UUID
    vendor_assignment_id: UUID
    tracking_number: str = Field(..., min_length=1, max_length=100)
    carrier: str = Field(..., min_length=1, max_length=50)
    tracking_url: Optional[str] = None
    status: TrackingStatus = TrackingStatus.SHIPPED
    notes: Optional[str] = None


class TrackingStatusUpdate(BaseCreateSchema):
    status: TrackingStatus
    notes: Optional[str] = None


class TrackingResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    vendor_assignment_id: UUID
    tracking_number: str
    carrier: str
    tracking_url: Optional[str] = None
    status: str
    shipped_date: Optional[datetime] = None
    delivered_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class CarrierResponse(BaseModel):
    code: str
    name: str
    tracking_url: Optional[str] = None


class TrackingListResponse(BaseModel):
    items: List[TrackingResponse]
    total: int
