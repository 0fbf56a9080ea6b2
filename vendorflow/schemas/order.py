"""Pydantic schemas for orders, vendor assignments and splitting."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field

from vendorflow.models.assignment import AssignmentType, AssignmentStatus
from vendorflow.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== Ingestion ====================

class OrderItemIngest(BaseCreateSchema):
    external_item_id: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Optional[Decimal] = None
    product_data: Optional[Dict[str, Any]] = None


class OrderIngest(BaseCreateSchema):
    """Order as delivered by a storefront integration."""
    external_order_id: str
    order_number: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    total_amount: Optional[Decimal] = None
    currency: str = "USD"
    order_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    payment_status: Optional[str] = None
    notes: Optional[str] = None
    order_date: Optional[datetime] = None
    items: List[OrderItemIngest] = Field(default_factory=list)


# ==================== Orders ====================

class OrderItemResponse(BaseResponseSchema):
    id: UUID
    external_item_id: Optional[str] = None
    product_name: str
    sku: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderResponse(BaseResponseSchema):
    id: UUID
    store_id: UUID
    external_order_id: str
    order_number: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    total_amount: Decimal
    currency: str
    order_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    payment_status: Optional[str] = None
    order_date: datetime
    items: List[OrderItemResponse] = []


class StatusHistoryResponse(BaseResponseSchema):
    id: UUID
    vendor_assignment_id: Optional[UUID] = None
    scope: str
    old_status: Optional[str] = None
    new_status: str
    changed_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime


# ==================== Assignments ====================

class ItemQuantity(BaseModel):
    order_item_id: UUID
    quantity: int


class AssignVendorRequest(BaseCreateSchema):
    vendor_id: UUID
    assignment_type: AssignmentType = AssignmentType.FULL
    items: Optional[List[ItemQuantity]] = None
    notes: Optional[str] = None


class PartialAssignRequest(BaseCreateSchema):
    order_id: UUID
    vendor_id: UUID
    items: List[ItemQuantity]
    notes: Optional[str] = None


class AssignmentStatusUpdate(BaseCreateSchema):
    status: AssignmentStatus
    notes: Optional[str] = None


class ItemAssignmentResponse(BaseResponseSchema):
    id: UUID
    vendor_assignment_id: UUID
    order_item_id: UUID
    quantity: int
    assigned_amount: Decimal
    status: str


class AssignmentResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    vendor_id: UUID
    assignment_type: str
    status: str
    commission_rate: Decimal
    commission_amount: Decimal
    notes: Optional[str] = None
    assigned_by: Optional[UUID] = None
    assigned_at: datetime
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    status_changed_at: datetime


class AssignmentDetailResponse(AssignmentResponse):
    items: List[ItemAssignmentResponse] = []


class OrderStatusResponse(BaseModel):
    order: OrderResponse
    business_status: str
    recorded_status: Optional[str] = None
    assignments: List[AssignmentDetailResponse]
    history: List[StatusHistoryResponse]


# ==================== Splitting ====================

class AllocationResponse(BaseModel):
    item_assignment_id: UUID
    vendor_assignment_id: UUID
    vendor_id: UUID
    vendor_name: str
    assignment_type: str
    assignment_status: str
    quantity: int
    assigned_amount: Decimal
    status: str


class ItemSplitResponse(BaseModel):
    order_item_id: UUID
    product_name: str
    sku: Optional[str] = None
    quantity: int
    assigned_quantity: int
    remaining_quantity: int
    is_fully_assigned: bool
    allocations: List[AllocationResponse]


class OrderSplittingResponse(BaseModel):
    order_id: UUID
    order_number: str
    is_fully_assigned: bool
    items: List[ItemSplitResponse]


class RemainingQuantityResponse(BaseModel):
    order_item_id: UUID
    remaining_quantity: int


class SplittingAnalyticsResponse(BaseModel):
    split_orders: int
    vendors_involved: int
    total_split_amount: Decimal
    avg_split_quantity: float
    vendor_distribution: List[Dict[str, Any]]


class RemoveItemAssignmentResponse(BaseModel):
    item_assignment: ItemAssignmentResponse
    assignment: AssignmentResponse
    assignment_cancelled: bool
