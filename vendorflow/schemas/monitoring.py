"""Pydantic schemas for order monitoring and alerts."""
from datetime import datetime
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from vendorflow.config import settings
from vendorflow.schemas.base import BaseResponseSchema


# ==================== Thresholds ====================

class MonitoringThresholds(BaseModel):
    """Staleness thresholds. Keys are exchanged in camelCase."""
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    unassigned_order_hours: int = Field(24, gt=0, alias="unassignedOrderHours")
    assigned_but_not_accepted_hours: int = Field(48, gt=0, alias="assignedButNotAcceptedHours")
    accepted_but_not_started_hours: int = Field(72, gt=0, alias="acceptedButNotStartedHours")
    in_progress_too_long_days: int = Field(7, gt=0, alias="inProgressTooLongDays")
    no_tracking_after_days: int = Field(3, gt=0, alias="noTrackingAfterDays")
    stale_tracking_days: int = Field(14, gt=0, alias="staleTrackingDays")
    proof_expiry_warning_hours: int = Field(24, gt=0, alias="proofExpiryWarningHours")

    @classmethod
    def from_settings(cls) -> "MonitoringThresholds":
        return cls(
            unassigned_order_hours=settings.UNASSIGNED_ORDER_HOURS,
            assigned_but_not_accepted_hours=settings.ASSIGNED_BUT_NOT_ACCEPTED_HOURS,
            accepted_but_not_started_hours=settings.ACCEPTED_BUT_NOT_STARTED_HOURS,
            in_progress_too_long_days=settings.IN_PROGRESS_TOO_LONG_DAYS,
            no_tracking_after_days=settings.NO_TRACKING_AFTER_DAYS,
            stale_tracking_days=settings.STALE_TRACKING_DAYS,
            proof_expiry_warning_hours=settings.PROOF_EXPIRY_WARNING_HOURS,
        )

    @classmethod
    def keys(cls) -> List[str]:
        """Accepted keys: camelCase aliases and snake_case field names."""
        return [f.alias for f in cls.model_fields.values()] + list(cls.model_fields)

    def to_storage(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


# ==================== Alerts ====================

class AlertResponse(BaseResponseSchema):
    """Response schema for an order alert."""
    id: UUID
    alert_type: str
    entity_type: str
    entity_id: UUID
    order_id: UUID
    vendor_id: Optional[UUID] = None
    title: str
    message: str
    details: Optional[Dict[str, Any]] = None
    is_read: bool = False
    read_at: Optional[datetime] = None
    first_detected_at: datetime
    last_detected_at: datetime
    resolved_at: Optional[datetime] = None


class AlertListResponse(BaseModel):
    items: List[AlertResponse]
    total: int
    unread_count: int


class ScanResultResponse(BaseModel):
    created: int
    refreshed: int
    resolved: int
    active: int
    expired_proofs: int = 0
    by_type: Dict[str, int]


class MonitoringStatsResponse(BaseModel):
    total_active_alerts: int
    unread_alerts: int
    active_alerts_by_type: Dict[str, int]
    open_assignments_by_status: Dict[str, int]
    unassigned_orders: int
