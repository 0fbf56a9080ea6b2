"""
Vendor Financials API Endpoints

Ledger entries, balances and payouts. Vendors may read their own records;
every write is admin-only.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from vendorflow.api.deps import DB, CurrentActor, AdminActor
from vendorflow.core.exceptions import Unauthorized
from vendorflow.core.security import Actor
from vendorflow.models.financial import TransactionType, TransactionStatus, PayoutStatus
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.financial import (
    TransactionCreate,
    TransactionStatusUpdate,
    TransactionResponse,
    PayoutCreate,
    PayoutStatusUpdate,
    PayoutResponse,
    VendorFinancialSummary,
)
from vendorflow.services.ledger_service import LedgerService

router = APIRouter()


def _ensure_vendor_access(actor: Actor, vendor_id: UUID) -> None:
    if not actor.owns_vendor(vendor_id):
        raise Unauthorized("Financial records belong to another vendor", vendor_id=vendor_id)


# ==================== Transactions ====================

@router.post("/transactions", response_model=ApiResponse[TransactionResponse], status_code=status.HTTP_201_CREATED)
async def record_transaction(data: TransactionCreate, db: DB, actor: AdminActor):
    transaction = await LedgerService(db).record_transaction(
        data.vendor_id,
        data.transaction_type.value,
        data.amount,
        reference_id=data.reference_id,
        description=data.description,
        transaction_date=data.transaction_date,
        status=data.status.value,
        currency=data.currency,
        extra_data=data.extra_data,
        actor=actor,
    )
    return ok(TransactionResponse.model_validate(transaction))


@router.put("/transactions/{transaction_id}/status", response_model=ApiResponse[TransactionResponse])
async def update_transaction_status(
    transaction_id: UUID,
    data: TransactionStatusUpdate,
    db: DB,
    actor: AdminActor,
):
    transaction = await LedgerService(db).update_transaction_status(transaction_id, data.status.value, actor=actor)
    return ok(TransactionResponse.model_validate(transaction))


@router.get("/vendors/{vendor_id}/transactions", response_model=ApiResponse[List[TransactionResponse]])
async def list_transactions(
    vendor_id: UUID,
    db: DB,
    actor: CurrentActor,
    transaction_type: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    _ensure_vendor_access(actor, vendor_id)
    transactions = await LedgerService(db).list_transactions(
        vendor_id,
        transaction_type=transaction_type.value if transaction_type else None,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return ok([TransactionResponse.model_validate(t) for t in transactions])


@router.get("/vendors/{vendor_id}/summary", response_model=ApiResponse[VendorFinancialSummary])
async def get_vendor_summary(vendor_id: UUID, db: DB, actor: CurrentActor):
    _ensure_vendor_access(actor, vendor_id)
    return ok(await LedgerService(db).get_vendor_summary(vendor_id))


# ==================== Payouts ====================

@router.post("/payouts", response_model=ApiResponse[PayoutResponse], status_code=status.HTTP_201_CREATED)
async def create_payout(data: PayoutCreate, db: DB, actor: AdminActor):
    """Batch completed transactions into a pending payout."""
    payout = await LedgerService(db).create_payout(
        data.vendor_id,
        data.transaction_ids,
        payout_method=data.payout_method,
        notes=data.notes,
        actor=actor,
    )
    return ok(PayoutResponse.model_validate(payout), message="Payout created")


@router.put("/payouts/{payout_id}/status", response_model=ApiResponse[PayoutResponse])
async def update_payout_status(
    payout_id: UUID,
    data: PayoutStatusUpdate,
    db: DB,
    actor: AdminActor,
):
    payout = await LedgerService(db).update_payout_status(
        payout_id,
        data.status.value,
        transaction_reference=data.transaction_reference,
        actor=actor,
    )
    return ok(PayoutResponse.model_validate(payout))


@router.get("/vendors/{vendor_id}/payouts", response_model=ApiResponse[List[PayoutResponse]])
async def list_payouts(
    vendor_id: UUID,
    db: DB,
    actor: CurrentActor,
    status_filter: Optional[PayoutStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    _ensure_vendor_access(actor, vendor_id)
    payouts = await LedgerService(db).list_payouts(
        vendor_id,
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return ok([PayoutResponse.model_validate(p) for p in payouts])
