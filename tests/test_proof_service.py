from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from vendorflow.core.exceptions import (
    AlreadyResolved,
    Expired,
    InvalidAssignmentState,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from vendorflow.core.timeutils import utcnow
from vendorflow.models.notification import NotificationDelivery
from vendorflow.models.proof import CustomerApprovalResponse
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.notification_service import NotificationService
from vendorflow.services.production_status_service import ProductionStatusService
from vendorflow.services.proof_service import ProofService, approval_url

from tests.conftest import item_by_sku, move_to, vendor_actor


IMAGES = [{"image_url": "https://cdn.example.com/proofs/front.png", "mime_type": "image/png"}]


@pytest_asyncio.fixture
async def assignment(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    assignment = await service.assign_vendor(order.id, vendor.id, "full", actor=admin)
    return await move_to(service, assignment, "accepted", actor=admin)


async def _create(db_session, order, assignment, actor, sku="TS-1", proof_type="design_proof", **kwargs):
    return await ProofService(db_session, **kwargs.pop("service_kwargs", {})).create_proof_approval(
        order.id,
        item_by_sku(order, sku).id,
        assignment.id,
        proof_type,
        IMAGES,
        actor=actor,
        **kwargs,
    )


async def test_create_sends_approval_link(db_session, order, vendor, assignment):
    proof, token = await _create(db_session, order, assignment, vendor_actor(vendor))

    assert proof.status == "pending"
    assert proof.customer_email == "customer@example.com"
    assert proof.sent_at is not None
    assert len(token) >= 40
    assert [image.sort_order for image in proof.images] == [0]

    delivery = (await db_session.execute(
        select(NotificationDelivery).where(NotificationDelivery.template == "proof_approval_request")
    )).scalar_one()
    assert delivery.recipient == "customer@example.com"
    assert delivery.payload["approval_url"] == approval_url(token)

    production = await ProductionStatusService(db_session).get_or_create(assignment)
    assert production.design_proof_status == "pending"


async def test_create_requires_images_and_known_type(db_session, order, assignment, admin):
    service = ProofService(db_session)
    item_id = item_by_sku(order, "TS-1").id
    with pytest.raises(ValidationFailed):
        await service.create_proof_approval(order.id, item_id, assignment.id, "design_proof", [], actor=admin)
    with pytest.raises(ValidationFailed):
        await service.create_proof_approval(order.id, item_id, assignment.id, "sketch", IMAGES, actor=admin)


async def test_item_must_be_covered_by_assignment(db_session, order, vendor, admin):
    service = AssignmentService(db_session)
    tshirt = item_by_sku(order, "TS-1")
    partial = await service.assign_vendor(order.id, vendor.id, "partial", items=[(tshirt.id, 2)], actor=admin)

    with pytest.raises(ValidationFailed):
        await _create(db_session, order, partial, admin, sku="MUG-1")


async def test_no_proofs_for_finished_assignments(db_session, order, assignment, admin):
    await move_to(AssignmentService(db_session), assignment, "cancelled", actor=admin)
    with pytest.raises(InvalidAssignmentState):
        await _create(db_session, order, assignment, admin)


async def test_other_vendor_cannot_send_proofs(db_session, order, other_vendor, assignment):
    with pytest.raises(Unauthorized):
        await _create(db_session, order, assignment, vendor_actor(other_vendor))


async def test_approval_expires_lazily(db_session, order, assignment, admin):
    created_at = utcnow()
    proof, token = await _create(db_session, order, assignment, admin, now=created_at)
    assert proof.expires_at == created_at + timedelta(days=7)

    service = ProofService(db_session)
    with pytest.raises(Expired):
        await service.resolve_customer_approval(token, "approved", now=created_at + timedelta(days=8))

    await db_session.refresh(proof)
    assert proof.status == "pending"
    view = await service.get_approval_by_token(token, now=created_at + timedelta(days=8))
    assert view["status"] == "expired"
    assert view["can_respond"] is False


async def test_customer_decision_is_single_use(db_session, order, assignment, admin):
    proof, token = await _create(db_session, order, assignment, admin)
    service = ProofService(db_session)

    resolved = await service.resolve_customer_approval(
        token, "approved", response_notes="Looks great", ip_address="203.0.113.9", user_agent="pytest"
    )
    assert resolved.status == "approved"
    assert resolved.responded_at is not None

    with pytest.raises(AlreadyResolved):
        await service.resolve_customer_approval(token, "rejected")

    responses = (await db_session.execute(select(CustomerApprovalResponse))).scalars().all()
    assert [(r.decision, r.ip_address) for r in responses] == [("approved", "203.0.113.9")]

    production = await ProductionStatusService(db_session).get_or_create(assignment)
    assert production.design_proof_status == "approved"


async def test_revision_request_blocks_production(db_session, order, vendor, assignment, admin):
    proof, token = await _create(db_session, order, assignment, admin, proof_type="production_proof")

    await ProofService(db_session).resolve_customer_approval(token, "revision_requested", response_notes="Darker blue")

    production = await ProductionStatusService(db_session).get_or_create(assignment)
    assert production.production_proof_status == "revision_requested"
    assert production.blocked_reason == "Darker blue"

    vendor_mail = (await db_session.execute(
        select(NotificationDelivery).where(NotificationDelivery.template == "proof_response_received")
    )).scalar_one()
    assert vendor_mail.recipient == vendor.email


async def test_invalid_decision_and_unknown_token(db_session, order, assignment, admin):
    _, token = await _create(db_session, order, assignment, admin)
    service = ProofService(db_session)
    with pytest.raises(ValidationFailed):
        await service.resolve_customer_approval(token, "maybe")
    with pytest.raises(NotFound):
        await service.resolve_customer_approval("not-a-token", "approved")


async def test_failed_email_is_recorded_and_proof_kept(db_session, order, assignment, admin):
    async def bouncing_sender(delivery):
        raise ConnectionError("mailbox unavailable")

    notifier = NotificationService(db_session, sender=bouncing_sender)
    proof, _ = await _create(db_session, order, assignment, admin, service_kwargs={"notifier": notifier})

    assert proof.status == "pending"
    assert proof.sent_at is None
    delivery = (await db_session.execute(
        select(NotificationDelivery).where(NotificationDelivery.template == "proof_approval_request")
    )).scalar_one()
    assert delivery.status == "failed"


async def test_resend_only_while_open(db_session, order, assignment, admin):
    proof, token = await _create(db_session, order, assignment, admin)
    service = ProofService(db_session)

    await service.resend_approval(proof.id, actor=admin)
    sent = (await db_session.execute(
        select(NotificationDelivery).where(NotificationDelivery.template == "proof_approval_request")
    )).scalars().all()
    assert len(sent) == 2

    await service.resolve_customer_approval(token, "rejected")
    with pytest.raises(AlreadyResolved):
        await service.resend_approval(proof.id, actor=admin)


async def test_stats_and_status_filter_use_effective_status(db_session, order, assignment, admin):
    start = utcnow()
    stale, _ = await _create(db_session, order, assignment, admin, now=start - timedelta(days=10))
    fresh, token = await _create(db_session, order, assignment, admin, sku="MUG-1", now=start)
    await ProofService(db_session).resolve_customer_approval(token, "approved")

    service = ProofService(db_session)
    stats = await service.get_proof_stats(now=start)
    assert stats["total"] == 2
    assert stats["expired"] == 1
    assert stats["approved"] == 1
    assert stats["pending"] == 0

    expired = await service.list_proofs(status="expired", now=start)
    assert [p.id for p in expired] == [stale.id]


async def test_expiry_sweep_persists_expired(db_session, order, assignment, admin):
    start = utcnow()
    proof, _ = await _create(db_session, order, assignment, admin, now=start - timedelta(days=10))

    assert await ProofService(db_session).expire_stale_proofs(now=start) == 1
    await db_session.refresh(proof)
    assert proof.status == "expired"
