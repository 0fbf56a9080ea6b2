import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, Rate


class VendorStatus(str, Enum):
    """Vendor approval status."""
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class Vendor(Base):
    """
    Marketplace vendor.

    Maintained by the vendor directory; this service reads approval status
    and the default commission rate (a percentage, 15.00 = 15%).
    """
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    company_name: Mapped[str] = mapped_column(String(200), nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=VendorStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, suspended, rejected"
    )
    commission_rate: Mapped[Decimal] = mapped_column(Rate, default=Decimal("15.00"))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_active(self) -> bool:
        return self.status == VendorStatus.APPROVED.value

    def __repr__(self) -> str:
        return f"<Vendor(company='{self.company_name}', status='{self.status}')>"


class VendorProductRate(Base):
    """Per-product commission override for a vendor, keyed by SKU."""
    __tablename__ = "vendor_product_rates"
    __table_args__ = (
        UniqueConstraint("vendor_id", "sku", name="uq_vendor_product_rates_vendor_sku"),
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
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<VendorProductRate(sku='{self.sku}', rate={self.commission_rate})>"
