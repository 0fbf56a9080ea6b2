import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, Money, Rate


class AssignmentType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class AssignmentStatus(str, Enum):
    """Vendor assignment lifecycle."""
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ItemAssignmentStatus(str, Enum):
    """Item allocations follow their parent assignment."""
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VendorAssignment(Base):
    """
    A vendor's responsibility for all (full) or part (partial) of an order.

    A full assignment is the only non-cancelled assignment of its order.
    """
    __tablename__ = "vendor_assignments"
    __table_args__ = (
        Index("ix_vendor_assignments_order_status", "order_id", "status"),
        Index("ix_vendor_assignments_vendor_status", "vendor_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False
    )
    assignment_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="full, partial"
    )
    status: Mapped[str] = mapped_column(
        String(50),
        default=AssignmentStatus.ASSIGNED.value,
        nullable=False,
        comment="assigned, accepted, in_progress, completed, cancelled"
    )

    commission_rate: Mapped[Optional[Decimal]] = mapped_column(Rate, nullable=True)
    commission_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    # Lifecycle timestamps
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

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
        return f"<VendorAssignment(order='{self.order_id}', vendor='{self.vendor_id}', status='{self.status}')>"


class OrderItemAssignment(Base):
    """Quantity of one order item allocated to one vendor assignment."""
    __tablename__ = "order_item_assignments"
    __table_args__ = (
        Index("ix_order_item_assignments_item_status", "order_item_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    vendor_assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendor_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=ItemAssignmentStatus.ASSIGNED.value,
        nullable=False,
        comment="assigned, completed, cancelled"
    )

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
        return f"<OrderItemAssignment(item='{self.order_item_id}', qty={self.quantity}, status='{self.status}')>"
