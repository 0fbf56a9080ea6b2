"""
Vendor Financial Ledger

Append-only vendor transactions and payouts that batch settled
transactions. Amount sign convention:

- sale: positive (marketplace owes the vendor)
- commission, fee, payout: stored negative
- adjustment: either sign, never zero

A transaction can belong to at most one payout that has not failed. A
failed payout releases its transactions for the next batch.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, List, Dict, Any, Iterable, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.config import settings
from vendorflow.core.exceptions import (
    NotFound,
    Unauthorized,
    ValidationFailed,
    TransactionNotSettled,
    DuplicatePayoutInclusion,
)
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.financial import (
    VendorFinancialTransaction,
    VendorPayout,
    TransactionType,
    TransactionStatus,
    PayoutStatus,
    DEBIT_TRANSACTION_TYPES,
)
from vendorflow.models.vendor import Vendor
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.notification_service import NotificationService
from vendorflow.services.status_machine import (
    validate_payout_transition,
    validate_transaction_transition,
)


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def normalize_amount(transaction_type: str, amount: Any) -> Decimal:
    """Apply the sign convention for ``transaction_type``."""
    valid_types = [t.value for t in TransactionType]
    if transaction_type not in valid_types:
        raise ValidationFailed(
            f"Invalid transaction type '{transaction_type}'. Allowed: {', '.join(valid_types)}",
            transaction_type=transaction_type,
        )
    try:
        value = Decimal(str(amount)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationFailed(f"Invalid amount '{amount}'", amount=str(amount))

    if transaction_type == TransactionType.SALE.value:
        if value <= 0:
            raise ValidationFailed("Sale amount must be positive", amount=str(value))
        return value
    if transaction_type in DEBIT_TRANSACTION_TYPES:
        if value == 0:
            raise ValidationFailed(f"{transaction_type} amount must be non-zero", amount=str(value))
        return -abs(value)
    if value == 0:
        raise ValidationFailed("Adjustment amount must be non-zero", amount=str(value))
    return value


class LedgerService:
    """Vendor transactions, balances and payouts."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.activity = ActivityService(db)
        self.notifier = notifier or NotificationService(db)

    # ==================== Lookups ====================

    async def get_vendor(self, vendor_id: uuid.UUID) -> Vendor:
        vendor = await self.db.get(Vendor, vendor_id)
        if not vendor:
            raise NotFound("Vendor", vendor_id)
        return vendor

    async def get_transaction(self, transaction_id: uuid.UUID) -> VendorFinancialTransaction:
        transaction = await self.db.get(VendorFinancialTransaction, transaction_id)
        if not transaction:
            raise NotFound("Transaction", transaction_id)
        return transaction

    async def get_payout(self, payout_id: uuid.UUID) -> VendorPayout:
        payout = await self.db.get(VendorPayout, payout_id)
        if not payout:
            raise NotFound("Payout", payout_id)
        return payout

    async def list_transactions(
        self,
        vendor_id: uuid.UUID,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[VendorFinancialTransaction]:
        stmt = select(VendorFinancialTransaction).where(VendorFinancialTransaction.vendor_id == vendor_id)
        if transaction_type:
            stmt = stmt.where(VendorFinancialTransaction.transaction_type == transaction_type)
        if status:
            stmt = stmt.where(VendorFinancialTransaction.status == status)
        stmt = stmt.order_by(VendorFinancialTransaction.transaction_date.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_payouts(
        self,
        vendor_id: uuid.UUID,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[VendorPayout]:
        stmt = select(VendorPayout).where(VendorPayout.vendor_id == vendor_id)
        if status:
            stmt = stmt.where(VendorPayout.status == status)
        stmt = stmt.order_by(VendorPayout.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def committed_transaction_ids(self, vendor_id: uuid.UUID) -> Set[str]:
        """Ids already carried by a payout of this vendor that has not failed."""
        stmt = select(VendorPayout).where(
            VendorPayout.vendor_id == vendor_id,
            VendorPayout.status != PayoutStatus.FAILED.value,
        )
        result = await self.db.execute(stmt)
        committed = set()
        for payout in result.scalars().all():
            committed.update(str(tid) for tid in payout.included_transactions or [])
        return committed

    # ==================== Transactions ====================

    async def record_transaction(
        self,
        vendor_id: uuid.UUID,
        transaction_type: str,
        amount: Any,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
        transaction_date: Optional[datetime] = None,
        status: str = TransactionStatus.PENDING.value,
        currency: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        actor: Optional[Actor] = None,
    ) -> VendorFinancialTransaction:
        """Append a ledger entry. Entries are never edited afterwards."""
        await self.get_vendor(vendor_id)
        value = normalize_amount(transaction_type, amount)
        if status not in [s.value for s in TransactionStatus]:
            raise ValidationFailed(f"Invalid transaction status '{status}'", status=status)

        transaction = VendorFinancialTransaction(
            vendor_id=vendor_id,
            transaction_type=transaction_type,
            reference_id=reference_id,
            amount=value,
            currency=currency or settings.DEFAULT_CURRENCY,
            description=description,
            status=status,
            transaction_date=transaction_date or utcnow(),
            extra_data=extra_data,
        )
        self.db.add(transaction)
        await self.db.flush()

        await self.activity.log(
            action="RECORD_TRANSACTION",
            entity_type="VENDOR_TRANSACTION",
            entity_id=transaction.id,
            actor=actor,
            description=f"{transaction_type} {value} for vendor {vendor_id}",
            extra_data={"transaction_type": transaction_type, "amount": str(value), "reference_id": reference_id},
        )
        await self.db.commit()
        return transaction

    async def update_transaction_status(
        self,
        transaction_id: uuid.UUID,
        new_status: str,
        actor: Optional[Actor] = None,
    ) -> VendorFinancialTransaction:
        """Move a transaction along its settlement lifecycle."""
        transaction = await self.get_transaction(transaction_id)
        old_status = transaction.status
        validate_transaction_transition(old_status, new_status)

        transaction.status = new_status
        await self.db.flush()

        await self.activity.log(
            action="UPDATE_TRANSACTION_STATUS",
            entity_type="VENDOR_TRANSACTION",
            entity_id=transaction.id,
            actor=actor,
            description=f"Transaction status changed from {old_status} to {new_status}",
            extra_data={"old_status": old_status, "new_status": new_status},
        )
        await self.db.commit()
        return transaction

    # ==================== Payouts ====================

    async def create_payout(
        self,
        vendor_id: uuid.UUID,
        transaction_ids: Iterable[uuid.UUID],
        payout_method: Optional[str] = None,
        notes: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> VendorPayout:
        """
        Batch settled transactions into a pending payout.

        The selected transactions are row-locked so two concurrent payouts
        cannot both claim them.
        """
        ids = list(dict.fromkeys(transaction_ids))
        if not ids:
            raise ValidationFailed("At least one transaction is required for a payout")
        vendor = await self.get_vendor(vendor_id)

        result = await self.db.execute(
            select(VendorFinancialTransaction)
            .where(VendorFinancialTransaction.id.in_(ids))
            .order_by(VendorFinancialTransaction.id)
            .with_for_update()
        )
        transactions = {t.id: t for t in result.scalars().all()}

        for transaction_id in ids:
            transaction = transactions.get(transaction_id)
            if transaction is None:
                raise NotFound("Transaction", transaction_id)
            if transaction.vendor_id != vendor_id:
                raise Unauthorized(
                    f"Transaction {transaction_id} belongs to another vendor",
                    transaction_id=transaction_id,
                )
            if transaction.status != TransactionStatus.COMPLETED.value:
                raise TransactionNotSettled(
                    f"Transaction {transaction_id} is {transaction.status}, only completed transactions can be paid out",
                    transaction_id=transaction_id,
                    status=transaction.status,
                )

        committed = await self.committed_transaction_ids(vendor_id)
        duplicates = [str(tid) for tid in ids if str(tid) in committed]
        if duplicates:
            raise DuplicatePayoutInclusion(
                f"Transactions already included in another payout: {', '.join(duplicates)}",
                transaction_ids=duplicates,
            )

        total = sum((transactions[tid].amount for tid in ids), Decimal("0"))
        if total <= 0:
            raise ValidationFailed(f"Payout total must be positive, got {total}", total=str(total))

        payout = VendorPayout(
            vendor_id=vendor_id,
            amount=total,
            currency=transactions[ids[0]].currency,
            status=PayoutStatus.PENDING.value,
            payout_method=payout_method,
            notes=notes,
            included_transactions=[str(tid) for tid in ids],
            created_by=actor.id if actor else None,
        )
        self.db.add(payout)
        await self.db.flush()

        await self.activity.log(
            action="CREATE_PAYOUT",
            entity_type="VENDOR_PAYOUT",
            entity_id=payout.id,
            actor=actor,
            description=f"Payout of {total} for vendor {vendor_id} covering {len(ids)} transactions",
            extra_data={"amount": str(total), "transaction_count": len(ids)},
        )
        await self.db.commit()
        logger.info(f"Created payout {payout.id} for vendor {vendor_id}: {total}")

        await self.notifier.dispatch(
            recipient_type="vendor",
            recipient=vendor.email,
            template="payout_created",
            payload={"amount": str(total), "currency": payout.currency, "payout_id": str(payout.id)},
        )
        await self.db.commit()
        return payout

    async def update_payout_status(
        self,
        payout_id: uuid.UUID,
        new_status: str,
        transaction_reference: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> VendorPayout:
        payout = await self.get_payout(payout_id)
        old_status = payout.status
        validate_payout_transition(old_status, new_status)

        payout.status = new_status
        if transaction_reference:
            payout.transaction_reference = transaction_reference
        if new_status == PayoutStatus.COMPLETED.value:
            payout.payout_date = utcnow()
            result = await self.db.execute(
                select(VendorFinancialTransaction).where(
                    VendorFinancialTransaction.id.in_(
                        [uuid.UUID(str(tid)) for tid in payout.included_transactions or []]
                    )
                )
            )
            for transaction in result.scalars().all():
                transaction.payout_date = payout.payout_date
        await self.db.flush()

        await self.activity.log(
            action="UPDATE_PAYOUT_STATUS",
            entity_type="VENDOR_PAYOUT",
            entity_id=payout.id,
            actor=actor,
            description=f"Payout status changed from {old_status} to {new_status}",
            extra_data={
                "old_status": old_status,
                "new_status": new_status,
                "transaction_reference": transaction_reference,
            },
        )
        await self.db.commit()
        if new_status == PayoutStatus.FAILED.value:
            logger.warning(f"Payout {payout.id} failed; {len(payout.included_transactions or [])} transactions released")
        return payout

    # ==================== Summary ====================

    async def get_vendor_summary(self, vendor_id: uuid.UUID) -> Dict[str, Any]:
        """Completed totals per type, available balance and payout state."""
        vendor = await self.get_vendor(vendor_id)

        result = await self.db.execute(
            select(VendorFinancialTransaction).where(
                VendorFinancialTransaction.vendor_id == vendor_id,
                VendorFinancialTransaction.status == TransactionStatus.COMPLETED.value,
            )
        )
        completed = list(result.scalars().all())

        totals = {t.value: Decimal("0") for t in TransactionType}
        for transaction in completed:
            totals[transaction.transaction_type] += transaction.amount

        committed = await self.committed_transaction_ids(vendor_id)
        available = sum(
            (t.amount for t in completed if str(t.id) not in committed),
            Decimal("0"),
        )

        payouts = await self.list_payouts(vendor_id, limit=1000)
        pending_total = sum(
            (p.amount for p in payouts
             if p.status in (PayoutStatus.PENDING.value, PayoutStatus.PROCESSING.value)),
            Decimal("0"),
        )
        completed_payouts = [p for p in payouts if p.status == PayoutStatus.COMPLETED.value]
        last_payout = max(completed_payouts, key=lambda p: p.payout_date, default=None)

        return {
            "vendor_id": vendor.id,
            "vendor_name": vendor.company_name,
            "totals_by_type": totals,
            "net_earnings": sum(totals.values(), Decimal("0")),
            "available_balance": available,
            "pending_payout_total": pending_total,
            "last_payout_amount": last_payout.amount if last_payout else None,
            "last_payout_date": last_payout.payout_date if last_payout else None,
        }
