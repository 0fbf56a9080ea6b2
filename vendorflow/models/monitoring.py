import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, JSONType


class AlertType(str, Enum):
    """Staleness conditions detected by the monitoring scan."""
    UNASSIGNED = "unassigned"
    NOT_ACCEPTED = "not_accepted"
    NOT_STARTED = "not_started"
    STALE_IN_PROGRESS = "stale_in_progress"
    MISSING_TRACKING = "missing_tracking"
    STALE_TRACKING = "stale_tracking"
    OVERDUE_PROOF = "overdue_proof"
    PROOF_REVISION_REQUESTED = "proof_revision_requested"


class OrderAlert(Base):
    """
    Monitoring alert for one entity and one condition.

    At most one unresolved row exists per (entity_type, entity_id, alert_type);
    repeated scans refresh last_detected_at. vendor_id is null for alerts only
    admins see.
    """
    __tablename__ = "order_alerts"
    __table_args__ = (
        Index("ix_order_alerts_condition", "entity_type", "entity_id", "alert_type", "resolved_at"),
        Index(
            "uq_order_alerts_open_condition",
            "entity_type",
            "entity_id",
            "alert_type",
            unique=True,
            postgresql_where=text("resolved_at IS NULL"),
            sqlite_where=text("resolved_at IS NULL"),
        ),
        Index("ix_order_alerts_vendor_read", "vendor_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    alert_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="order, vendor_assignment, order_tracking, proof_approval"
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(UUIDType(as_uuid=True), nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendors.id", ondelete="CASCADE"),
        nullable=True
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    first_detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    last_detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<OrderAlert(type='{self.alert_type}', entity='{self.entity_id}')>"


class SystemSetting(Base):
    """Runtime-editable configuration stored as JSON under a unique key."""
    __tablename__ = "system_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    setting_key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    setting_value: Mapped[dict] = mapped_column(JSONType, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )
