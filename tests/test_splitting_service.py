from decimal import Decimal

import pytest

from vendorflow.core.exceptions import InvalidAssignmentState, NotFound
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.splitting_service import SplittingService, aggregate_requested

from tests.conftest import item_by_sku, move_to


def test_aggregate_requested_sums_duplicate_lines():
    assert aggregate_requested([("a", 2), ("b", 1), ("a", 3)]) == {"a": 5, "b": 1}


async def test_order_splitting_view(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    mug = item_by_sku(order, "MUG-1")
    await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 4), (mug.id, 5)], actor=admin)
    await service.assign_vendor(order.id, other_vendor.id, "partial", items=[(tshirt.id, 6)], actor=admin)

    view = await SplittingService(db_session).get_order_splitting(order.id)

    assert view["order_number"] == order.order_number
    assert view["is_fully_assigned"] is True
    by_item = {entry["order_item_id"]: entry for entry in view["items"]}
    assert by_item[tshirt.id]["remaining_quantity"] == 0
    assert sorted(a["vendor_name"] for a in by_item[tshirt.id]["allocations"]) == ["Acme Print", "Beta Goods"]
    assert by_item[mug.id]["allocations"][0]["assigned_amount"] == Decimal("100.00")


async def test_partially_split_order_is_not_fully_assigned(db_session, order, vendor, admin):
    tshirt = item_by_sku(order, "TS-1")
    await AssignmentService(db_session).assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 3)], actor=admin)

    view = await SplittingService(db_session).get_order_splitting(order.id)
    assert view["is_fully_assigned"] is False


async def test_remove_item_assignment_recalculates_commission(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    mug = item_by_sku(order, "MUG-1")
    assignment = await service.assign_vendor(
        order.id, vendor.id, "partial", items=[(tshirt.id, 4), (mug.id, 5)], actor=admin
    )
    assert assignment.commission_amount == Decimal("14.00")

    mug_allocation = next(
        i for i in await splitting.get_item_assignments(assignment.id) if i.order_item_id == mug.id
    )
    result = await splitting.remove_item_assignment(mug_allocation.id, actor=admin)

    assert result["assignment_cancelled"] is False
    assert result["item_assignment"].status == "cancelled"
    assert result["assignment"].commission_amount == Decimal("4.00")
    assert await splitting.remaining_quantity(mug.id) == 5


async def test_removing_last_item_cancels_the_assignment(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    assignment = await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 4)], actor=admin)

    allocation = (await splitting.get_item_assignments(assignment.id))[0]
    result = await splitting.remove_item_assignment(allocation.id, actor=admin)

    assert result["assignment_cancelled"] is True
    assert result["assignment"].status == "cancelled"
    assert result["assignment"].cancelled_at is not None
    assert await splitting.remaining_quantity(tshirt.id) == 10


async def test_cannot_remove_items_from_completed_assignment(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    assignment = await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 4)], actor=admin)
    await move_to(service, assignment, "accepted", "in_progress", "completed", actor=admin)

    allocation = (await splitting.get_item_assignments(assignment.id))[0]
    with pytest.raises(InvalidAssignmentState):
        await splitting.remove_item_assignment(allocation.id, actor=admin)


async def test_removing_an_item_from_a_full_assignment_frees_it(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    mug = item_by_sku(order, "MUG-1")
    full = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)

    mug_allocation = next(
        i for i in await splitting.get_item_assignments(full.id) if i.order_item_id == mug.id
    )
    result = await splitting.remove_item_assignment(mug_allocation.id, actor=admin)

    assert result["assignment_cancelled"] is False
    assert result["assignment"].assignment_type == "partial"
    assert result["assignment"].commission_amount == Decimal("10.00")
    assert await splitting.remaining_quantity(mug.id) == 5

    reassigned = await service.assign_vendor(
        order.id, other_vendor.id, "partial", items=[(mug.id, 5)], actor=admin
    )
    assert reassigned.status == "assigned"
    view = await splitting.get_order_splitting(order.id)
    assert view["is_fully_assigned"] is True


async def test_remove_twice(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    splitting = SplittingService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    mug = item_by_sku(order, "MUG-1")
    assignment = await service.assign_vendor(
        order.id, vendor.id, "partial", items=[(tshirt.id, 1), (mug.id, 1)], actor=admin
    )
    allocation = (await splitting.get_item_assignments(assignment.id))[0]
    await splitting.remove_item_assignment(allocation.id, actor=admin)

    with pytest.raises(InvalidAssignmentState):
        await splitting.remove_item_assignment(allocation.id, actor=admin)


async def test_remaining_quantity_unknown_item(db_session):
    import uuid

    with pytest.raises(NotFound):
        await SplittingService(db_session).remaining_quantity(uuid.uuid4())


async def test_splitting_analytics(db_session, order, vendor, other_vendor, admin):
    service = AssignmentService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    mug = item_by_sku(order, "MUG-1")
    await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 4), (mug.id, 2)], actor=admin)
    await service.assign_vendor(order.id, other_vendor.id, "partial", items=[(tshirt.id, 6)], actor=admin)

    analytics = await SplittingService(db_session).get_splitting_analytics()

    assert analytics["split_orders"] == 1
    assert analytics["vendors_involved"] == 2
    assert analytics["total_split_amount"] == Decimal("140.00")
    assert analytics["avg_split_quantity"] == 4
    top = analytics["vendor_distribution"][0]
    assert top["vendor_name"] == "Acme Print"
    assert top["total_amount"] == Decimal("80.00")
    assert top["assignments"] == 1
