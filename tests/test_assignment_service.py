import random
from decimal import Decimal

import pytest
from sqlalchemy import select

from vendorflow.core.exceptions import (
    DuplicateFullAssignment,
    InvalidAssignmentState,
    InvalidAssignmentType,
    InvalidTransition,
    NotFound,
    OverAllocation,
    Unauthorized,
    ValidationFailed,
    VendorInactive,
)
from vendorflow.models.activity_log import ActivityLog
from vendorflow.models.notification import NotificationDelivery
from vendorflow.models.vendor import VendorProductRate
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.splitting_service import SplittingService

from tests.conftest import item_by_sku, make_order, make_vendor, move_to, vendor_actor


async def test_partial_assignments_split_an_item(db_session, store, admin):
    order = await make_order(db_session, store, items=[("Poster", "P-1", 10, "5.00")], order_number="100")
    item = order.items[0]
    vendor_a = await make_vendor(db_session, "Vendor A")
    vendor_b = await make_vendor(db_session, "Vendor B")
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)

    await service.assign_vendor(order.id, vendor_a.id, "partial", items=[(item.id, 6)], actor=admin)
    assert await splitting.remaining_quantity(item.id) == 4

    with pytest.raises(OverAllocation) as exc:
        await service.assign_vendor(order.id, vendor_b.id, "partial", items=[(item.id, 5)], actor=admin)
    assert exc.value.details == {"order_item_id": item.id, "requested": 5, "remaining": 4}

    await service.assign_vendor(order.id, vendor_b.id, "partial", items=[(item.id, 4)], actor=admin)
    assert await splitting.remaining_quantity(item.id) == 0


async def test_assigned_cannot_jump_to_in_progress(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    assignment = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)

    with pytest.raises(InvalidTransition):
        await service.update_assignment_status(assignment.id, "in_progress", actor=admin)

    await db_session.refresh(assignment)
    assert assignment.status == "assigned"


async def test_full_assignment_is_exclusive(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    await service.assign_vendor(order.id, vendor.id, "full", actor=admin)

    with pytest.raises(DuplicateFullAssignment):
        await service.assign_vendor(order.id, other_vendor.id, "full", actor=admin)

    tshirt = item_by_sku(order, "TS-1")
    with pytest.raises(DuplicateFullAssignment):
        await service.assign_vendor(order.id, other_vendor.id, "partial", items=[(tshirt.id, 1)], actor=admin)


async def test_full_assignment_rejected_when_partials_exist(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 2)], actor=admin)

    with pytest.raises(DuplicateFullAssignment):
        await service.assign_vendor(order.id, other_vendor.id, "full", actor=admin)


async def test_cancelled_full_assignment_frees_the_order(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    first = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)
    await service.update_assignment_status(first.id, "cancelled", actor=admin)

    second = await service.assign_vendor(order.id, other_vendor.id, "full", actor=admin)
    assert second.status == "assigned"
    assert await SplittingService(db_session).remaining_quantity(item_by_sku(order, "MUG-1").id) == 0


async def test_full_assignment_commission_uses_vendor_default(db_session, order, vendor, admin):
    assignment = await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)
    assert assignment.commission_amount == Decimal("20.00")
    assert assignment.commission_rate == Decimal("10.00")


async def test_sku_override_beats_vendor_default(db_session, order, vendor, admin):
    db_session.add(VendorProductRate(vendor_id=vendor.id, sku="MUG-1", commission_rate=Decimal("20.00")))
    await db_session.commit()

    assignment = await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)
    # 100.00 at 10% + 100.00 at 20%
    assert assignment.commission_amount == Decimal("30.00")
    assert assignment.commission_rate == Decimal("15.00")


async def test_partial_commission_covers_allocated_amount_only(db_session, order, vendor, admin):
    tshirt = item_by_sku(order, "TS-1")
    assignment = await AssignmentService(db_session).assign_vendor(
        order.id, vendor.id, "partial", items=[(tshirt.id, 6)], actor=admin
    )
    assert assignment.commission_amount == Decimal("6.00")
    items = await SplittingService(db_session).get_item_assignments(assignment.id)
    assert [(i.quantity, i.assigned_amount) for i in items] == [(6, Decimal("60.00"))]


@pytest.mark.parametrize("status", ["pending", "suspended", "rejected"])
async def test_inactive_vendor_is_rejected(db_session, order, admin, status):
    inactive = await make_vendor(db_session, f"Vendor {status}", status=status)
    with pytest.raises(VendorInactive):
        await AssignmentService(db_session).assign_vendor(order.id, inactive.id, "full", actor=admin)


async def test_unknown_assignment_type(db_session, order, vendor, admin):
    with pytest.raises(InvalidAssignmentType):
        await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "half", actor=admin)


async def test_partial_requires_positive_quantities(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    with pytest.raises(ValidationFailed):
        await service.assign_vendor(order.id, vendor.id, "partial", items=[], actor=admin)
    with pytest.raises(ValidationFailed):
        await service.assign_vendor(
            order.id, vendor.id, "partial", items=[(item_by_sku(order, "TS-1").id, 0)], actor=admin
        )


async def test_item_from_another_order(db_session, store, order, vendor, admin):
    other = await make_order(db_session, store, order_number="2002")
    with pytest.raises(NotFound):
        await AssignmentService(db_session).assign_vendor(
            order.id, vendor.id, "partial", items=[(other.items[0].id, 1)], actor=admin
        )


async def test_cancelled_order_cannot_be_assigned(db_session, store, vendor, admin):
    order = await make_order(db_session, store, order_status="cancelled")
    with pytest.raises(InvalidAssignmentState):
        await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)


async def test_lifecycle_stamps_and_history(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    assignment = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)
    assignment = await move_to(service, assignment, "accepted", "in_progress", "completed", actor=vendor_actor(vendor))

    assert assignment.accepted_at is not None
    assert assignment.started_at is not None
    assert assignment.completed_at is not None

    status = await service.get_order_status(order.id)
    assert status["business_status"] == "completed"
    assert status["recorded_status"] == "completed"

    assignment_rows = [(h.old_status, h.new_status) for h in status["history"] if h.scope == "assignment"]
    assert assignment_rows == [
        (None, "assigned"),
        ("assigned", "accepted"),
        ("accepted", "in_progress"),
        ("in_progress", "completed"),
    ]
    order_rows = [(h.old_status, h.new_status) for h in status["history"] if h.scope == "order"]
    assert order_rows == [
        ("unassigned", "assigned"),
        ("assigned", "in_progress"),
        ("in_progress", "completed"),
    ]

    items = await SplittingService(db_session).get_item_assignments(assignment.id)
    assert {i.status for i in items} == {"completed"}


async def test_cancel_releases_quantities(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    assignment = await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 7)], actor=admin)
    assert await splitting.remaining_quantity(tshirt.id) == 3

    await service.update_assignment_status(assignment.id, "cancelled", actor=admin)
    assert await splitting.remaining_quantity(tshirt.id) == 10


async def test_vendor_cannot_touch_another_vendors_assignment(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    assignment = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)
    with pytest.raises(Unauthorized):
        await service.update_assignment_status(assignment.id, "accepted", actor=vendor_actor(other_vendor))


async def test_assignment_notifies_vendor_and_logs_activity(db_session, order, vendor, admin):
    assignment = await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "full", actor=admin)

    deliveries = (await db_session.execute(select(NotificationDelivery))).scalars().all()
    assert [(d.recipient, d.template, d.status) for d in deliveries] == [
        (vendor.email, "vendor_assignment_created", "sent"),
    ]
    logs = (await db_session.execute(
        select(ActivityLog).where(ActivityLog.entity_id == assignment.id)
    )).scalars().all()
    assert [log.action for log in logs] == ["ASSIGN_VENDOR"]
    assert logs[0].actor_id == admin.id


async def test_notification_failure_does_not_undo_assignment(db_session, order, vendor, admin):
    async def broken_sender(delivery):
        raise RuntimeError("SMTP unavailable")

    from vendorflow.services.notification_service import NotificationService

    service = AssignmentService(db_session, notifier=NotificationService(db_session, sender=broken_sender))
    assignment = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)

    assert (await service.get_assignment(assignment.id)).status == "assigned"
    delivery = (await db_session.execute(select(NotificationDelivery))).scalar_one()
    assert delivery.status == "failed"
    assert "SMTP unavailable" in delivery.error_message


@pytest.mark.parametrize("seed", [7, 21, 1984])
async def test_random_split_sequences_never_over_allocate(db_session, store, admin, seed):
    rng = random.Random(seed)
    order = await make_order(
        db_session, store, items=[("Poster", "P-1", 12, "3.00"), ("Card", "C-1", 7, "1.50")]
    )
    vendors = [await make_vendor(db_session, f"Vendor {n}") for n in range(3)]
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    live = []

    for _ in range(25):
        if live and rng.random() < 0.3:
            assignment = live.pop(rng.randrange(len(live)))
            await service.update_assignment_status(assignment.id, "cancelled", actor=admin)
            continue
        item = rng.choice(order.items)
        quantity = rng.randint(1, 6)
        try:
            live.append(await service.assign_vendor(
                order.id, rng.choice(vendors).id, "partial", items=[(item.id, quantity)], actor=admin
            ))
        except OverAllocation:
            pass

        allocated = await splitting.allocated_quantities([i.id for i in order.items])
        for order_item in order.items:
            assert 0 <= allocated[order_item.id] <= order_item.quantity
