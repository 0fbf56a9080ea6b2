import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, JSONType, Money


class TransactionType(str, Enum):
    SALE = "sale"
    COMMISSION = "commission"
    FEE = "fee"
    PAYOUT = "payout"
    ADJUSTMENT = "adjustment"


# Types that reduce what the marketplace owes the vendor; stored negative
DEBIT_TRANSACTION_TYPES = (
    TransactionType.COMMISSION.value,
    TransactionType.FEE.value,
    TransactionType.PAYOUT.value,
)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VendorFinancialTransaction(Base):
    """
    Vendor ledger entry.

    Append-only: vendor, type and amount are fixed at insert. Only the
    settlement status moves.
    """
    __tablename__ = "vendor_financial_transactions"
    __table_args__ = (
        Index("ix_vendor_financial_transactions_vendor_date", "vendor_id", "transaction_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="CASCADE"),
        nullable=False
    )
    transaction_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="sale, commission, fee, payout, adjustment"
    )
    reference_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=TransactionStatus.PENDING.value,
        nullable=False,
        comment="pending, processing, completed, failed, cancelled"
    )
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    payout_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    extra_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<VendorFinancialTransaction(type='{self.transaction_type}', amount={self.amount})>"


class VendorPayout(Base):
    """Batch settlement of completed transactions owed to a vendor."""
    __tablename__ = "vendor_payouts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[str] = mapped_column(
        String(50),
        default=PayoutStatus.PENDING.value,
        nullable=False,
        comment="pending, processing, completed, failed"
    )
    payout_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payout_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    included_transactions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<VendorPayout(vendor='{self.vendor_id}', amount={self.amount}, status='{self.status}')>"
