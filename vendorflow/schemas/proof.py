"""Pydantic schemas for customer proof approvals and production status."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from vendorflow.models.proof import ProofType
from vendorflow.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== Proofs ====================

class ProofImageCreate(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=1000)
    filename: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    sort_order: Optional[int] = None


class ProofCreate(BaseCreateSchema):
    order_id: UUID
    order_item_id: UUID
    vendor_assignment_id: UUID
    proof_type: ProofType
    images: List[ProofImageCreate]
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    custom_message: Optional[str] = None


class ProofImageResponse(BaseResponseSchema):
    id: UUID
    image_url: str
    filename: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    sort_order: int


class ProofResponse(BaseResponseSchema):
    """Vendor/admin view. The approval token is never part of it."""
    id: UUID
    order_id: UUID
    order_item_id: UUID
    vendor_assignment_id: UUID
    proof_type: str
    status: str
    customer_email: str
    customer_name: Optional[str] = None
    custom_message: Optional[str] = None
    expires_at: datetime
    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    response_notes: Optional[str] = None
    created_at: datetime
    images: List[ProofImageResponse] = []


class ProofCreatedResponse(BaseModel):
    proof: ProofResponse
    approval_url: str


class CustomerProofView(BaseModel):
    """What the customer sees behind the approval link."""
    proof_type: str
    status: str
    can_respond: bool
    order_number: str
    product_name: Optional[str] = None
    variant_title: Optional[str] = None
    customer_name: Optional[str] = None
    custom_message: Optional[str] = None
    expires_at: datetime
    responded_at: Optional[datetime] = None
    images: List[ProofImageResponse] = []


class CustomerDecision(BaseModel):
    decision: str
    notes: Optional[str] = Field(None, max_length=5000)


class ProofStatsResponse(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    revision_requested: int
    expired: int


# ==================== Production status ====================

class ProductionStatusUpdate(BaseCreateSchema):
    field: str
    value: str
    blocked_reason: Optional[str] = None


class ProductionStatusResponse(BaseResponseSchema):
    id: UUID
    order_id: UUID
    vendor_assignment_id: UUID
    design_proof_status: str
    production_proof_status: str
    blocked_reason: Optional[str] = None
    updated_by: Optional[UUID] = None
    updated_at: datetime
