"""Pydantic schemas for the vendor ledger and payouts."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field

from vendorflow.models.financial import TransactionType, TransactionStatus, PayoutStatus
from vendorflow.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== Transactions ====================

class TransactionCreate(BaseCreateSchema):
    vendor_id: UUID
    transaction_type: TransactionType
    amount: Decimal
    reference_id: Optional[str] = None
    description: Optional[str] = None
    transaction_date: Optional[datetime] = None
    status: TransactionStatus = TransactionStatus.PENDING
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    extra_data: Optional[Dict[str, Any]] = None


class TransactionStatusUpdate(BaseCreateSchema):
    status: TransactionStatus


class TransactionResponse(BaseResponseSchema):
    id: UUID
    vendor_id: UUID
    transaction_type: str
    reference_id: Optional[str] = None
    amount: Decimal
    currency: str
    description: Optional[str] = None
    status: str
    transaction_date: datetime
    payout_date: Optional[datetime] = None
    extra_data: Optional[Dict[str, Any]] = None
    created_at: datetime


# ==================== Payouts ====================

class PayoutCreate(BaseCreateSchema):
    vendor_id: UUID
    transaction_ids: List[UUID]
    payout_method: Optional[str] = None
    notes: Optional[str] = None


class PayoutStatusUpdate(BaseCreateSchema):
    status: PayoutStatus
    transaction_reference: Optional[str] = None


class PayoutResponse(BaseResponseSchema):
    id: UUID
    vendor_id: UUID
    amount: Decimal
    currency: str
    status: str
    payout_method: Optional[str] = None
    payout_date: Optional[datetime] = None
    transaction_reference: Optional[str] = None
    notes: Optional[str] = None
    included_transactions: List[UUID] = []
    created_at: datetime
    updated_at: datetime


class VendorFinancialSummary(BaseModel):
    vendor_id: UUID
    vendor_name: str
    totals_by_type: Dict[str, Decimal]
    net_earnings: Decimal
    available_balance: Decimal
    pending_payout_total: Decimal
    last_payout_amount: Optional[Decimal] = None
    last_payout_date: Optional[datetime] = None
