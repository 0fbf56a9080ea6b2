"""
Order Monitoring & Alerting

Scans open orders, assignments, tracking entries and proofs against the
staleness thresholds and keeps ``order_alerts`` in sync with what it finds:

- a newly detected condition creates an alert and notifies the vendor (for
  assignment-scoped alerts) and the admins
- a condition that is still present refreshes ``last_detected_at`` on its
  existing alert; no duplicate is created, read state is kept
- an alert whose condition is gone is marked resolved

The scan itself is stateless; scheduling belongs to ``vendorflow.jobs``.
"""
import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple

from pydantic import ValidationError
from sqlalchemy import select, func, and_, or_, exists, text
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.config import settings
from vendorflow.core.exceptions import NotFound, Unauthorized, ValidationFailed
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow, as_utc
from vendorflow.models.assignment import VendorAssignment, AssignmentStatus
from vendorflow.models.monitoring import OrderAlert, SystemSetting, AlertType
from vendorflow.models.order import Order, CANCELLED_STORE_STATUSES
from vendorflow.models.proof import CustomerProofApproval, ProofStatus
from vendorflow.models.tracking import OrderTracking, TrackingStatus
from vendorflow.models.vendor import Vendor
from vendorflow.schemas.monitoring import MonitoringThresholds
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.notification_service import NotificationService
from vendorflow.services.proof_service import ProofService, PROOF_LABELS


logger = logging.getLogger(__name__)

THRESHOLDS_SETTING_KEY = "order_monitoring_thresholds"
# pg_advisory_xact_lock key shared by every monitoring scan
SCAN_LOCK_KEY = 7_310_042

ALERT_TITLES = {
    AlertType.UNASSIGNED.value: "Unassigned Order",
    AlertType.NOT_ACCEPTED.value: "Assignment Not Accepted",
    AlertType.NOT_STARTED.value: "Work Not Started",
    AlertType.STALE_IN_PROGRESS.value: "Order In Progress Too Long",
    AlertType.MISSING_TRACKING.value: "Missing Tracking Number",
    AlertType.STALE_TRACKING.value: "Outdated Tracking Status",
    AlertType.OVERDUE_PROOF.value: "Customer Proof Expired",
    AlertType.PROOF_REVISION_REQUESTED.value: "Customer Requested Revisions",
}


@dataclass
class Detection:
    """One condition found by a scan."""
    alert_type: str
    entity_type: str
    entity_id: uuid.UUID
    order_id: uuid.UUID
    message: str
    vendor_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, uuid.UUID, str]:
        return (self.entity_type, self.entity_id, self.alert_type)


@dataclass
class ScanResult:
    created: int = 0
    refreshed: int = 0
    resolved: int = 0
    active: int = 0
    expired_proofs: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    new_alerts: List[OrderAlert] = field(default_factory=list)


def _hours(delta: timedelta) -> int:
    return int(delta.total_seconds() // 3600)


def _days(delta: timedelta) -> int:
    return delta.days


class MonitoringService:
    """Staleness detection and alert management for fulfillment."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)

    # ==================== Thresholds ====================

    async def _get_threshold_setting(self) -> Optional[SystemSetting]:
        result = await self.db.execute(
            select(SystemSetting).where(SystemSetting.setting_key == THRESHOLDS_SETTING_KEY)
        )
        return result.scalar_one_or_none()

    async def get_thresholds(self) -> MonitoringThresholds:
        """Stored thresholds layered over the configured defaults."""
        thresholds = MonitoringThresholds.from_settings()
        setting = await self._get_threshold_setting()
        if setting and setting.setting_value:
            known = set(MonitoringThresholds.keys())
            stored = {k: v for k, v in setting.setting_value.items() if k in known}
            thresholds = MonitoringThresholds.model_validate({**thresholds.to_storage(), **stored})
        return thresholds

    async def update_thresholds(self, values: Dict[str, Any], actor: Optional[Actor] = None) -> MonitoringThresholds:
        """Merge ``values`` into the stored thresholds."""
        unknown = sorted(set(values) - set(MonitoringThresholds.keys()))
        if unknown:
            raise ValidationFailed(f"Invalid threshold keys: {', '.join(unknown)}", keys=unknown)

        current = await self.get_thresholds()
        merged = current.model_dump()
        for key, value in values.items():
            name = next(
                (n for n, f in MonitoringThresholds.model_fields.items() if key in (n, f.alias)),
            )
            merged[name] = value
        try:
            thresholds = MonitoringThresholds.model_validate(merged)
        except ValidationError as e:
            raise ValidationFailed(
                "Threshold values must be positive integers",
                fields=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
            )

        setting = await self._get_threshold_setting()
        if setting is None:
            setting = SystemSetting(
                setting_key=THRESHOLDS_SETTING_KEY,
                setting_value=thresholds.to_storage(),
                description="Order monitoring staleness thresholds",
            )
            self.db.add(setting)
        else:
            setting.setting_value = thresholds.to_storage()
        setting.updated_by = actor.id if actor else None
        await self.db.flush()

        await ActivityService(self.db).log(
            action="UPDATE_MONITORING_THRESHOLDS",
            entity_type="SYSTEM_SETTING",
            entity_id=setting.id,
            actor=actor,
            extra_data=thresholds.to_storage(),
        )
        await self.db.commit()
        return thresholds

    # ==================== Scan ====================

    async def run_scan(
        self,
        now: Optional[datetime] = None,
        thresholds: Optional[MonitoringThresholds] = None,
    ) -> ScanResult:
        """Evaluate every open entity and sync alerts. Safe to re-run."""
        now = now or utcnow()
        thresholds = thresholds or await self.get_thresholds()

        expired_proofs = 0
        if settings.PROOF_EXPIRY_SWEEP_ENABLED:
            expired_proofs = await ProofService(self.db, notifier=self.notifier).expire_stale_proofs(now)

        await self._lock_scan()
        detections: List[Detection] = []
        detections += await self._check_unassigned_orders(now, thresholds)
        detections += await self._check_assignments(now, thresholds)
        detections += await self._check_missing_tracking(now, thresholds)
        detections += await self._check_stale_tracking(now, thresholds)
        detections += await self._check_proofs(now, thresholds)

        result = await self._sync_alerts(detections, now)
        result.expired_proofs = expired_proofs
        await self.db.commit()

        for alert in result.new_alerts:
            await self._notify(alert)
        await self.db.commit()

        logger.info(
            f"Monitoring scan: {result.created} new, {result.refreshed} refreshed, "
            f"{result.resolved} resolved, {result.active} active"
        )
        return result

    async def _lock_scan(self) -> None:
        """Serialize concurrent scans until commit. SQLite needs no lock."""
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": SCAN_LOCK_KEY})

    async def _check_unassigned_orders(self, now: datetime, t: MonitoringThresholds) -> List[Detection]:
        cutoff = now - timedelta(hours=t.unassigned_order_hours)
        has_assignment = exists().where(
            VendorAssignment.order_id == Order.id,
            VendorAssignment.status != AssignmentStatus.CANCELLED.value,
        )
        result = await self.db.execute(
            select(Order).where(
                Order.order_date < cutoff,
                or_(
                    Order.order_status.is_(None),
                    func.lower(Order.order_status).not_in(CANCELLED_STORE_STATUSES),
                ),
                ~has_assignment,
            )
        )
        detections = []
        for order in result.scalars().all():
            hours = _hours(now - as_utc(order.order_date))
            detections.append(Detection(
                alert_type=AlertType.UNASSIGNED.value,
                entity_type="order",
                entity_id=order.id,
                order_id=order.id,
                message=f"Order #{order.order_number} has been unassigned for {hours} hours",
                details={"order_number": order.order_number, "overdue_amount": hours, "unit": "hours"},
            ))
        return detections

    async def _check_assignments(self, now: datetime, t: MonitoringThresholds) -> List[Detection]:
        """not_accepted, not_started and stale_in_progress."""
        rules = [
            (
                AlertType.NOT_ACCEPTED.value,
                AssignmentStatus.ASSIGNED.value,
                VendorAssignment.assigned_at,
                now - timedelta(hours=t.assigned_but_not_accepted_hours),
            ),
            (
                AlertType.NOT_STARTED.value,
                AssignmentStatus.ACCEPTED.value,
                VendorAssignment.accepted_at,
                now - timedelta(hours=t.accepted_but_not_started_hours),
            ),
            (
                AlertType.STALE_IN_PROGRESS.value,
                AssignmentStatus.IN_PROGRESS.value,
                VendorAssignment.status_changed_at,
                now - timedelta(days=t.in_progress_too_long_days),
            ),
        ]
        detections = []
        for alert_type, status, since_column, cutoff in rules:
            result = await self.db.execute(
                select(VendorAssignment, Order.order_number)
                .join(Order, VendorAssignment.order_id == Order.id)
                .where(VendorAssignment.status == status, since_column < cutoff)
            )
            for assignment, order_number in result.all():
                since = as_utc(getattr(assignment, since_column.key))
                age = now - since
                if alert_type == AlertType.NOT_ACCEPTED.value:
                    amount, unit = _hours(age), "hours"
                    message = f"Order #{order_number} assignment has not been accepted for {amount} hours"
                elif alert_type == AlertType.NOT_STARTED.value:
                    amount, unit = _hours(age), "hours"
                    message = f"Order #{order_number} was accepted {amount} hours ago but work has not started"
                else:
                    amount, unit = _days(age), "days"
                    message = f"Order #{order_number} has been in progress for {amount} days"
                detections.append(Detection(
                    alert_type=alert_type,
                    entity_type="vendor_assignment",
                    entity_id=assignment.id,
                    order_id=assignment.order_id,
                    vendor_id=assignment.vendor_id,
                    message=message,
                    details={
                        "order_number": order_number,
                        "vendor_assignment_id": assignment.id,
                        "overdue_amount": amount,
                        "unit": unit,
                    },
                ))
        return detections

    async def _check_missing_tracking(self, now: datetime, t: MonitoringThresholds) -> List[Detection]:
        cutoff = now - timedelta(days=t.no_tracking_after_days)
        has_tracking = exists().where(OrderTracking.vendor_assignment_id == VendorAssignment.id)
        result = await self.db.execute(
            select(VendorAssignment, Order.order_number)
            .join(Order, VendorAssignment.order_id == Order.id)
            .where(
                VendorAssignment.status == AssignmentStatus.IN_PROGRESS.value,
                VendorAssignment.status_changed_at < cutoff,
                ~has_tracking,
            )
        )
        detections = []
        for assignment, order_number in result.all():
            days = _days(now - as_utc(assignment.status_changed_at))
            detections.append(Detection(
                alert_type=AlertType.MISSING_TRACKING.value,
                entity_type="vendor_assignment",
                entity_id=assignment.id,
                order_id=assignment.order_id,
                vendor_id=assignment.vendor_id,
                message=f"Order #{order_number} has been in progress for {days} days without a tracking number",
                details={
                    "order_number": order_number,
                    "vendor_assignment_id": assignment.id,
                    "overdue_amount": days,
                    "unit": "days",
                },
            ))
        return detections

    async def _check_stale_tracking(self, now: datetime, t: MonitoringThresholds) -> List[Detection]:
        cutoff = now - timedelta(days=t.stale_tracking_days)
        # Newest entry per assignment; same-timestamp entries are ordered by id
        latest = (
            select(
                OrderTracking.id,
                func.row_number().over(
                    partition_by=OrderTracking.vendor_assignment_id,
                    order_by=(OrderTracking.created_at.desc(), OrderTracking.id.desc()),
                ).label("row_num"),
            )
            .subquery()
        )
        result = await self.db.execute(
            select(OrderTracking, VendorAssignment.vendor_id, Order.order_number)
            .join(latest, and_(OrderTracking.id == latest.c.id, latest.c.row_num == 1))
            .join(VendorAssignment, OrderTracking.vendor_assignment_id == VendorAssignment.id)
            .join(Order, OrderTracking.order_id == Order.id)
            .where(
                OrderTracking.status.in_([TrackingStatus.SHIPPED.value, TrackingStatus.IN_TRANSIT.value]),
                OrderTracking.shipped_date < cutoff,
                VendorAssignment.status != AssignmentStatus.CANCELLED.value,
            )
        )
        detections = []
        for tracking, vendor_id, order_number in result.all():
            days = _days(now - as_utc(tracking.shipped_date))
            detections.append(Detection(
                alert_type=AlertType.STALE_TRACKING.value,
                entity_type="order_tracking",
                entity_id=tracking.id,
                order_id=tracking.order_id,
                vendor_id=vendor_id,
                message=(
                    f"Order #{order_number} tracking {tracking.tracking_number} has shown "
                    f"'{tracking.status}' for {days} days"
                ),
                details={
                    "order_number": order_number,
                    "tracking_number": tracking.tracking_number,
                    "carrier": tracking.carrier,
                    "overdue_amount": days,
                    "unit": "days",
                },
            ))
        return detections

    async def _check_proofs(self, now: datetime, t: MonitoringThresholds) -> List[Detection]:
        """overdue_proof and proof_revision_requested, skipping superseded proofs."""
        newer = aliased(CustomerProofApproval)
        superseded = exists().where(
            newer.vendor_assignment_id == CustomerProofApproval.vendor_assignment_id,
            newer.order_item_id == CustomerProofApproval.order_item_id,
            newer.proof_type == CustomerProofApproval.proof_type,
            newer.created_at > CustomerProofApproval.created_at,
        )
        warning_cutoff = now + timedelta(hours=t.proof_expiry_warning_hours)
        result = await self.db.execute(
            select(CustomerProofApproval, VendorAssignment.vendor_id, Order.order_number)
            .join(VendorAssignment, CustomerProofApproval.vendor_assignment_id == VendorAssignment.id)
            .join(Order, CustomerProofApproval.order_id == Order.id)
            .where(
                VendorAssignment.status.not_in([
                    AssignmentStatus.COMPLETED.value,
                    AssignmentStatus.CANCELLED.value,
                ]),
                or_(
                    and_(
                        CustomerProofApproval.status == ProofStatus.PENDING.value,
                        CustomerProofApproval.expires_at < warning_cutoff,
                    ),
                    CustomerProofApproval.status.in_([
                        ProofStatus.EXPIRED.value,
                        ProofStatus.REVISION_REQUESTED.value,
                    ]),
                ),
                ~superseded,
            )
        )
        detections = []
        for proof, vendor_id, order_number in result.all():
            label = PROOF_LABELS[proof.proof_type]
            details = {
                "order_number": order_number,
                "proof_approval_id": proof.id,
                "proof_type": proof.proof_type,
                "order_item_id": proof.order_item_id,
            }
            expires_at = as_utc(proof.expires_at)

            if proof.status == ProofStatus.REVISION_REQUESTED.value:
                reason = f": {proof.response_notes}" if proof.response_notes else ""
                detections.append(Detection(
                    alert_type=AlertType.PROOF_REVISION_REQUESTED.value,
                    entity_type="proof_approval",
                    entity_id=proof.id,
                    order_id=proof.order_id,
                    vendor_id=vendor_id,
                    message=f"Order #{order_number} customer requested revisions to the {label}{reason}",
                    details=details,
                ))
            elif now > expires_at:
                hours = _hours(now - expires_at)
                detections.append(Detection(
                    alert_type=AlertType.OVERDUE_PROOF.value,
                    entity_type="proof_approval",
                    entity_id=proof.id,
                    order_id=proof.order_id,
                    vendor_id=vendor_id,
                    message=f"Order #{order_number} {label} expired {hours} hours ago without a customer response",
                    details={**details, "overdue_amount": hours, "unit": "hours"},
                ))
            else:
                hours = _hours(expires_at - now)
                detections.append(Detection(
                    alert_type=AlertType.OVERDUE_PROOF.value,
                    entity_type="proof_approval",
                    entity_id=proof.id,
                    order_id=proof.order_id,
                    vendor_id=vendor_id,
                    title="Customer Proof Expiring Soon",
                    message=f"Order #{order_number} {label} expires in {hours} hours without a customer response",
                    details={**details, "expires_in_hours": hours},
                ))
        return detections

    async def _sync_alerts(self, detections: List[Detection], now: datetime) -> ScanResult:
        result = await self.db.execute(select(OrderAlert).where(OrderAlert.resolved_at.is_(None)))
        open_alerts = {
            (alert.entity_type, alert.entity_id, alert.alert_type): alert
            for alert in result.scalars().all()
        }

        scan = ScanResult()
        seen = set()
        for detection in detections:
            if detection.key in seen:
                continue
            seen.add(detection.key)
            title = detection.title or ALERT_TITLES[detection.alert_type]
            details = {"alert_type": detection.alert_type, "order_id": detection.order_id, **detection.details}

            alert = open_alerts.get(detection.key)
            if alert is not None:
                alert.last_detected_at = now
                alert.title = title
                alert.message = detection.message
                alert.details = details
                scan.refreshed += 1
            else:
                alert = OrderAlert(
                    alert_type=detection.alert_type,
                    entity_type=detection.entity_type,
                    entity_id=detection.entity_id,
                    order_id=detection.order_id,
                    vendor_id=detection.vendor_id,
                    title=title,
                    message=detection.message,
                    details=details,
                    is_read=False,
                    first_detected_at=now,
                    last_detected_at=now,
                )
                self.db.add(alert)
                scan.new_alerts.append(alert)
                scan.created += 1

        for key, alert in open_alerts.items():
            if key not in seen:
                alert.resolved_at = now
                scan.resolved += 1

        await self.db.flush()
        scan.active = len(seen)
        scan.by_type = dict(Counter(d.alert_type for d in detections))
        return scan

    async def _notify(self, alert: OrderAlert) -> None:
        payload = {
            "title": alert.title,
            "message": alert.message,
            "alert_type": alert.alert_type,
            "order_id": str(alert.order_id),
        }
        if alert.vendor_id:
            vendor = await self.db.get(Vendor, alert.vendor_id)
            if vendor:
                await self.notifier.dispatch("vendor", vendor.email, "order_alert", payload)
        await self.notifier.dispatch("admin", settings.ADMIN_NOTIFICATION_EMAIL, "order_alert", payload)

    # ==================== Alert queries ====================

    async def get_vendor_alerts(
        self,
        vendor_id: uuid.UUID,
        unread_only: bool = False,
        include_resolved: bool = False,
        limit: int = 100,
    ) -> List[OrderAlert]:
        stmt = select(OrderAlert).where(OrderAlert.vendor_id == vendor_id)
        return await self._list_alerts(stmt, unread_only, include_resolved, limit)

    async def get_admin_alerts(
        self,
        unread_only: bool = False,
        include_resolved: bool = False,
        alert_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[OrderAlert]:
        stmt = select(OrderAlert)
        if alert_type:
            stmt = stmt.where(OrderAlert.alert_type == alert_type)
        return await self._list_alerts(stmt, unread_only, include_resolved, limit)

    async def _list_alerts(self, stmt, unread_only: bool, include_resolved: bool, limit: int) -> List[OrderAlert]:
        if unread_only:
            stmt = stmt.where(OrderAlert.is_read.is_(False))
        if not include_resolved:
            stmt = stmt.where(OrderAlert.resolved_at.is_(None))
        result = await self.db.execute(stmt.order_by(OrderAlert.last_detected_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def mark_alert_read(self, alert_id: uuid.UUID, actor: Optional[Actor] = None) -> OrderAlert:
        alert = await self.db.get(OrderAlert, alert_id)
        if not alert:
            raise NotFound("Alert", alert_id)
        if actor is not None and actor.is_vendor and alert.vendor_id != actor.vendor_id:
            raise Unauthorized("Alert belongs to another vendor", alert_id=alert_id)
        if not alert.is_read:
            alert.is_read = True
            alert.read_at = utcnow()
            await self.db.commit()
        return alert

    async def get_monitoring_stats(self) -> Dict[str, Any]:
        alerts = await self.get_admin_alerts(limit=10000)
        by_type = Counter(alert.alert_type for alert in alerts)

        result = await self.db.execute(
            select(VendorAssignment.status, func.count(VendorAssignment.id))
            .where(VendorAssignment.status.not_in([
                AssignmentStatus.COMPLETED.value,
                AssignmentStatus.CANCELLED.value,
            ]))
            .group_by(VendorAssignment.status)
        )
        open_assignments = {status: count for status, count in result.all()}

        return {
            "total_active_alerts": len(alerts),
            "unread_alerts": sum(1 for alert in alerts if not alert.is_read),
            "active_alerts_by_type": dict(by_type),
            "open_assignments_by_status": open_assignments,
            "unassigned_orders": by_type.get(AlertType.UNASSIGNED.value, 0),
        }
