import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, JSONType, Money


class OrderBusinessStatus(str, Enum):
    """Fulfillment status derived from an order's vendor assignments."""
    UNASSIGNED = "unassigned"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class HistoryScope(str, Enum):
    """What a status history row describes."""
    ORDER = "order"
    ASSIGNMENT = "assignment"


# Store-reported statuses that take an order out of fulfillment
CANCELLED_STORE_STATUSES = ("cancelled", "refunded", "voided")


class Order(Base):
    """
    Order ingested from an external storefront.

    Owned by the ingestion boundary: only the store-reported statuses are
    ever updated after the first ingest.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("store_id", "external_order_id", name="uq_orders_store_external_id"),
        Index("ix_orders_order_date", "order_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    store_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    external_order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    order_number: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Customer
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Amounts
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Store-reported statuses
    order_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    fulfillment_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_date: Mapped[datetime] = mapped_column(
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

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.created_at",
    )

    @property
    def is_cancelled(self) -> bool:
        return (self.order_status or "").lower() in CANCELLED_STORE_STATUSES

    def __repr__(self) -> str:
        return f"<Order(order_number='{self.order_number}', store='{self.store_id}')>"


class OrderItem(Base):
    """Line item of an order. Quantity is the unit of allocation."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    external_item_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Product snapshot
    product_name: Mapped[str] = mapped_column(String(500), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    variant_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Money, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """
    Append-only status audit for orders and their vendor assignments.

    Order-scope rows carry the derived business status; the latest one is the
    order's recorded fulfillment state. Rows are never updated or deleted.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        Index("ix_order_status_history_order_created", "order_id", "created_at"),
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
    vendor_assignment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendor_assignments.id", ondelete="SET NULL"),
        nullable=True
    )
    scope: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=HistoryScope.ORDER.value,
        comment="order, assignment"
    )

    old_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)

    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(scope='{self.scope}', old='{self.old_status}', new='{self.new_status}')>"
