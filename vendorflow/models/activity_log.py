import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from vendorflow.database import Base
from vendorflow.db_types import UUIDType, JSONType


class ActivityLog(Base):
    """
    Activity log for fulfillment actions.
    Records: assignments, status changes, tracking, proofs, payouts, etc.
    """
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Who performed the action (null for customers and scheduled jobs)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False, default="system")

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # Actions: ASSIGN_VENDOR, UPDATE_ASSIGNMENT_STATUS, ADD_TRACKING, CREATE_PROOF, ...

    # Entity being modified
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType(as_uuid=True), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Request metadata
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(action='{self.action}', entity='{self.entity_type}', id='{self.entity_id}')>"
