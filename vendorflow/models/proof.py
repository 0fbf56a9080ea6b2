import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vendorflow.database import Base
from vendorflow.db_types import UUIDType


class ProofType(str, Enum):
    DESIGN_PROOF = "design_proof"
    PRODUCTION_PROOF = "production_proof"


class ProofStatus(str, Enum):
    """
    Customer proof approval status.

    EXPIRED is normally derived at read time from expires_at; it is only
    persisted when the optional expiry sweep runs.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"
    EXPIRED = "expired"


class CustomerProofApproval(Base):
    """Proof sent to the end customer for approval through a one-time token."""
    __tablename__ = "customer_proof_approvals"
    __table_args__ = (
        Index("ix_customer_proof_approvals_status_expires", "status", "expires_at"),
        Index("ix_customer_proof_approvals_assignment", "vendor_assignment_id"),
    )

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
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False
    )
    vendor_assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendor_assignments.id", ondelete="CASCADE"),
        nullable=False
    )

    proof_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="design_proof, production_proof"
    )
    status: Mapped[str] = mapped_column(
        String(50),
        default=ProofStatus.PENDING.value,
        nullable=False,
        comment="pending, approved, rejected, revision_requested, expired"
    )
    approval_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    custom_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    response_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    images: Mapped[List["ProofImage"]] = relationship(
        "ProofImage",
        back_populates="proof_approval",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProofImage.sort_order",
    )

    def __repr__(self) -> str:
        return f"<CustomerProofApproval(type='{self.proof_type}', status='{self.status}')>"


class ProofImage(Base):
    """Image metadata for a proof. Bytes live in external file storage."""
    __tablename__ = "proof_images"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    proof_approval_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("customer_proof_approvals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("order_items.id", ondelete="CASCADE"),
        nullable=False
    )
    image_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    proof_approval: Mapped["CustomerProofApproval"] = relationship(
        "CustomerProofApproval",
        back_populates="images",
    )


class CustomerApprovalResponse(Base):
    """Append-only record of a customer's answer to a proof approval."""
    __tablename__ = "customer_approval_responses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    proof_approval_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("customer_proof_approvals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    decision: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )


class OrderProductionStatus(Base):
    """Design/production proof outcome and blocking reason per assignment."""
    __tablename__ = "order_production_status"
    __table_args__ = (
        UniqueConstraint("order_id", "vendor_assignment_id", name="uq_order_production_status_assignment"),
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
    vendor_assignment_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("vendor_assignments.id", ondelete="CASCADE"),
        nullable=False
    )
    design_proof_status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    production_proof_status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    blocked_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
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

    def __repr__(self) -> str:
        return (
            f"<OrderProductionStatus(design='{self.design_proof_status}', "
            f"production='{self.production_proof_status}')>"
        )
