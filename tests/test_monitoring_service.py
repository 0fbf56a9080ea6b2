import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from vendorflow.config import settings
from vendorflow.core.exceptions import Unauthorized, ValidationFailed
from vendorflow.core.timeutils import utcnow
from vendorflow.jobs import build_scheduler, get_job_status, run_order_monitoring
from vendorflow.models.monitoring import OrderAlert
from vendorflow.models.notification import NotificationDelivery
from vendorflow.models.tracking import OrderTracking
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.monitoring_service import MonitoringService
from vendorflow.services.proof_service import ProofService
from vendorflow.services.tracking_service import TrackingService

from tests.conftest import item_by_sku, move_to, vendor_actor


def _of_type(alerts, alert_type):
    return [a for a in alerts if a.alert_type == alert_type]


async def test_unassigned_order_alert_is_idempotent(db_session, order):
    service = MonitoringService(db_session)
    later = utcnow() + timedelta(hours=25)

    first = await service.run_scan(now=later)
    assert first.created == 1
    assert first.by_type == {"unassigned": 1}
    alert = first.new_alerts[0]
    assert alert.entity_id == order.id
    assert alert.vendor_id is None
    assert alert.title == "Unassigned Order"
    assert alert.message == f"Order #{order.order_number} has been unassigned for 25 hours"

    second = await service.run_scan(now=later + timedelta(hours=1))
    assert (second.created, second.refreshed, second.resolved) == (0, 1, 0)

    alerts = await service.get_admin_alerts()
    assert len(alerts) == 1
    assert "26 hours" in alerts[0].message


async def test_only_one_open_alert_per_condition(db_session, session_factory, order):
    result = await MonitoringService(db_session).run_scan(now=utcnow() + timedelta(hours=25))
    alert = result.new_alerts[0]

    def copy(**overrides):
        return OrderAlert(
            alert_type=alert.alert_type,
            entity_type=alert.entity_type,
            entity_id=alert.entity_id,
            order_id=alert.order_id,
            title=alert.title,
            message=alert.message,
            **overrides,
        )

    async with session_factory() as session:
        session.add(copy(resolved_at=utcnow()))
        await session.commit()

        session.add(copy())
        with pytest.raises(IntegrityError):
            await session.flush()


async def test_fresh_order_raises_nothing(db_session, order):
    result = await MonitoringService(db_session).run_scan(now=utcnow() + timedelta(hours=1))
    assert result.active == 0


async def test_alert_resolves_when_condition_clears(db_session, order, vendor, admin):
    service = MonitoringService(db_session)
    later = utcnow() + timedelta(hours=25)
    await service.run_scan(now=later)

    await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)
    result = await service.run_scan(now=later + timedelta(minutes=5))

    assert result.resolved == 1
    assert result.active == 0
    assert await service.get_admin_alerts() == []
    resolved = await service.get_admin_alerts(include_resolved=True)
    assert resolved[0].resolved_at is not None


async def test_cancelled_store_orders_are_not_monitored(db_session, store):
    from tests.conftest import make_order

    await make_order(db_session, store, order_status="refunded")
    result = await MonitoringService(db_session).run_scan(now=utcnow() + timedelta(days=3))
    assert result.active == 0


async def test_not_accepted_alert_goes_to_vendor(db_session, order, vendor, other_vendor, admin):
    assignment = await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)
    service = MonitoringService(db_session)
    later = utcnow() + timedelta(hours=49)

    result = await service.run_scan(now=later)
    assert result.by_type == {"not_accepted": 1}

    alerts = await service.get_vendor_alerts(vendor.id)
    assert [(a.entity_id, a.title) for a in alerts] == [(assignment.id, "Assignment Not Accepted")]
    assert await service.get_vendor_alerts(other_vendor.id) == []

    notified = (await db_session.execute(
        select(NotificationDelivery.recipient).where(NotificationDelivery.template == "order_alert")
    )).scalars().all()
    assert sorted(notified) == sorted([vendor.email, settings.ADMIN_NOTIFICATION_EMAIL])

    with pytest.raises(Unauthorized):
        await service.mark_alert_read(alerts[0].id, actor=vendor_actor(other_vendor))
    read = await service.mark_alert_read(alerts[0].id, actor=vendor_actor(vendor))
    assert read.is_read is True

    # Read state survives the next scan
    await service.run_scan(now=later + timedelta(hours=1))
    assert (await service.get_vendor_alerts(vendor.id, unread_only=True)) == []
    assert (await service.get_vendor_alerts(vendor.id))[0].is_read is True


async def test_missing_then_stale_tracking(db_session, order, vendor, admin):
    assignments = AssignmentService(db_session)
    assignment = await assignments.assign_vendor(order.id, vendor.id, "full", actor=admin)
    await move_to(assignments, assignment, "accepted", "in_progress", actor=admin)
    service = MonitoringService(db_session)
    start = utcnow()

    result = await service.run_scan(now=start + timedelta(days=4))
    assert result.by_type == {"missing_tracking": 1}

    await TrackingService(db_session).add_tracking(order.id, assignment.id, "1Z1", "ups", actor=admin)
    result = await service.run_scan(now=start + timedelta(days=4, minutes=1))
    assert result.resolved == 1
    assert result.active == 0

    result = await service.run_scan(now=start + timedelta(days=15))
    assert result.by_type == {"stale_in_progress": 1, "stale_tracking": 1}
    stale = _of_type(await service.get_admin_alerts(), "stale_tracking")[0]
    assert "1Z1" in stale.message
    assert stale.details["carrier"] == "ups"


async def test_stale_tracking_looks_at_the_newest_entry_only(db_session, order, vendor, admin):
    assignments = AssignmentService(db_session)
    assignment = await assignments.assign_vendor(order.id, vendor.id, "full", actor=admin)
    await move_to(assignments, assignment, "accepted", "in_progress", actor=admin)
    now = utcnow()
    shipped = now - timedelta(days=30)

    def entry(number, status):
        return OrderTracking(
            id=uuid.UUID(int=number),
            order_id=order.id,
            vendor_assignment_id=assignment.id,
            tracking_number=f"1Z{number}",
            carrier="ups",
            status=status,
            shipped_date=shipped,
            created_at=now,
        )

    db_session.add_all([entry(1, "shipped"), entry(2, "delivered")])
    await db_session.commit()
    service = MonitoringService(db_session)

    result = await service.run_scan(now=now)
    assert "stale_tracking" not in result.by_type

    db_session.add(entry(3, "in_transit"))
    await db_session.commit()
    result = await service.run_scan(now=now)
    assert result.by_type["stale_tracking"] == 1
    assert result.new_alerts[0].entity_id == uuid.UUID(int=3)


async def test_proof_expiring_soon_then_expired(db_session, order, vendor, admin):
    assignments = AssignmentService(db_session)
    assignment = await assignments.assign_vendor(order.id, vendor.id, "full", actor=admin)
    await move_to(assignments, assignment, "accepted", actor=admin)
    start = utcnow()
    proof, _ = await ProofService(db_session).create_proof_approval(
        order.id,
        item_by_sku(order, "TS-1").id,
        assignment.id,
        "design_proof",
        [{"image_url": "https://cdn.example.com/p.png"}],
        actor=admin,
        now=start,
    )
    service = MonitoringService(db_session)

    await service.run_scan(now=start + timedelta(days=6, hours=12))
    warning = _of_type(await service.get_admin_alerts(), "overdue_proof")[0]
    assert warning.entity_id == proof.id
    assert warning.title == "Customer Proof Expiring Soon"

    await service.run_scan(now=start + timedelta(days=8))
    expired = _of_type(await service.get_admin_alerts(), "overdue_proof")
    assert len(expired) == 1
    assert expired[0].id == warning.id
    assert expired[0].title == "Customer Proof Expired"


async def test_revision_request_alert_cleared_by_new_proof(db_session, order, vendor, admin):
    assignments = AssignmentService(db_session)
    assignment = await assignments.assign_vendor(order.id, vendor.id, "full", actor=admin)
    await move_to(assignments, assignment, "accepted", actor=admin)
    proofs = ProofService(db_session)
    tshirt_id = item_by_sku(order, "TS-1").id
    images = [{"image_url": "https://cdn.example.com/p.png"}]

    _, token = await proofs.create_proof_approval(order.id, tshirt_id, assignment.id, "design_proof", images, actor=admin)
    await proofs.resolve_customer_approval(token, "revision_requested", response_notes="Bigger logo")

    service = MonitoringService(db_session)
    result = await service.run_scan()
    assert result.by_type == {"proof_revision_requested": 1}
    assert "Bigger logo" in result.new_alerts[0].message

    await proofs.create_proof_approval(order.id, tshirt_id, assignment.id, "design_proof", images, actor=admin)
    result = await service.run_scan()
    assert result.resolved == 1


async def test_thresholds_round_trip_and_validation(db_session, order, admin):
    service = MonitoringService(db_session)
    defaults = await service.get_thresholds()
    assert defaults.unassigned_order_hours == settings.UNASSIGNED_ORDER_HOURS

    updated = await service.update_thresholds({"unassignedOrderHours": 2}, actor=admin)
    assert updated.unassigned_order_hours == 2
    assert (await service.get_thresholds()).to_storage()["unassignedOrderHours"] == 2
    assert (await service.get_thresholds()).stale_tracking_days == settings.STALE_TRACKING_DAYS

    result = await service.run_scan(now=utcnow() + timedelta(hours=3))
    assert result.by_type == {"unassigned": 1}

    with pytest.raises(ValidationFailed) as exc:
        await service.update_thresholds({"bogusHours": 5}, actor=admin)
    assert exc.value.details["keys"] == ["bogusHours"]
    with pytest.raises(ValidationFailed):
        await service.update_thresholds({"staleTrackingDays": 0}, actor=admin)
    with pytest.raises(ValidationFailed):
        await service.update_thresholds({"staleTrackingDays": "soon"}, actor=admin)


async def test_monitoring_stats(db_session, order, vendor, admin):
    await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)
    service = MonitoringService(db_session)
    await service.run_scan(now=utcnow() + timedelta(hours=49))

    stats = await service.get_monitoring_stats()
    assert stats["total_active_alerts"] == 1
    assert stats["unread_alerts"] == 1
    assert stats["active_alerts_by_type"] == {"not_accepted": 1}
    assert stats["open_assignments_by_status"] == {"assigned": 1}


async def test_scheduled_job_uses_given_session_factory(session_factory, order):
    result = await run_order_monitoring(session_factory)
    assert result["created"] == 0
    assert set(result) >= {"created", "refreshed", "resolved", "active", "expired_proofs"}


def test_scheduler_registers_monitoring_job():
    scheduler = build_scheduler(session_factory=None, settings=settings)
    jobs = get_job_status(scheduler)
    assert [job["id"] for job in jobs] == ["order_monitoring"]
    assert not scheduler.running
