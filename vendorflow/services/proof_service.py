"""
Customer Proof Approval Workflow

Vendors (or admins) upload a design or production proof for one order item;
the customer receives a link carrying an unguessable token and answers
approve / reject / request revision. Tokens are single-use while pending and
expire after PROOF_APPROVAL_EXPIRY_DAYS.

Expiry is lazy: a pending proof past ``expires_at`` is treated as expired by
``effective_proof_status`` everywhere, whether or not the optional sweep has
written ``expired`` to the row.
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.config import settings
from vendorflow.core.exceptions import (
    NotFound,
    Expired,
    AlreadyResolved,
    InvalidAssignmentState,
    ValidationFailed,
)
from vendorflow.core.security import Actor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.assignment import VendorAssignment, OrderItemAssignment, ItemAssignmentStatus
from vendorflow.models.order import OrderItem
from vendorflow.models.notification import DeliveryStatus
from vendorflow.models.proof import (
    CustomerProofApproval,
    ProofImage,
    CustomerApprovalResponse,
    ProofStatus,
    ProofType,
)
from vendorflow.services.status_machine import effective_proof_status, is_terminal
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.production_status_service import ProductionStatusService
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


CUSTOMER_DECISIONS = (
    ProofStatus.APPROVED.value,
    ProofStatus.REJECTED.value,
    ProofStatus.REVISION_REQUESTED.value,
)

PROOF_LABELS = {
    ProofType.DESIGN_PROOF.value: "design proof",
    ProofType.PRODUCTION_PROOF.value: "production proof",
}

# Production status column updated when a proof of each type is answered
PRODUCTION_FIELD_BY_TYPE = {
    ProofType.DESIGN_PROOF.value: "design_proof_status",
    ProofType.PRODUCTION_PROOF.value: "production_proof_status",
}


def generate_approval_token() -> str:
    return secrets.token_urlsafe(32)


def approval_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/proof-approval/{token}"


class ProofService:
    """Service for customer proof approvals."""

    def __init__(self, db: AsyncSession, notifier: Optional[NotificationService] = None):
        self.db = db
        self.notifier = notifier or NotificationService(db)
        self.assignments = AssignmentService(db, notifier=self.notifier)
        self.production = ProductionStatusService(db)
        self.activity = ActivityService(db)

    # ==================== Lookups ====================

    async def get_proof(self, proof_id: uuid.UUID) -> CustomerProofApproval:
        proof = await self.db.get(CustomerProofApproval, proof_id)
        if not proof:
            raise NotFound("Proof approval", proof_id)
        return proof

    async def get_proof_for_actor(self, proof_id: uuid.UUID, actor: Optional[Actor] = None) -> CustomerProofApproval:
        """A single proof, scoped to the vendor that owns its assignment."""
        proof = await self.get_proof(proof_id)
        assignment = await self.assignments.get_assignment(proof.vendor_assignment_id)
        self.assignments.ensure_can_act(actor, assignment)
        return proof

    async def get_by_token(self, token: str, for_update: bool = False) -> CustomerProofApproval:
        stmt = select(CustomerProofApproval).where(CustomerProofApproval.approval_token == token)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        proof = result.scalar_one_or_none()
        if not proof:
            raise NotFound("Proof approval", message="Approval link not found")
        return proof

    async def list_proofs(
        self,
        order_id: Optional[uuid.UUID] = None,
        vendor_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[CustomerProofApproval]:
        """Proofs, newest first. ``status`` filters on the effective status."""
        stmt = select(CustomerProofApproval)
        if vendor_id:
            stmt = stmt.join(
                VendorAssignment,
                CustomerProofApproval.vendor_assignment_id == VendorAssignment.id,
            ).where(VendorAssignment.vendor_id == vendor_id)
        if order_id:
            stmt = stmt.where(CustomerProofApproval.order_id == order_id)
        result = await self.db.execute(stmt.order_by(CustomerProofApproval.created_at.desc()))
        proofs = list(result.scalars().all())
        if status:
            now = now or utcnow()
            proofs = [p for p in proofs if effective_proof_status(p, now) == status]
        return proofs

    async def get_proof_stats(
        self,
        vendor_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        now = now or utcnow()
        stats = {"total": 0}
        stats.update({status.value: 0 for status in ProofStatus})
        for proof in await self.list_proofs(vendor_id=vendor_id):
            stats["total"] += 1
            stats[effective_proof_status(proof, now)] += 1
        return stats

    async def get_approval_by_token(self, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Customer-facing view of a proof, with its effective status."""
        now = now or utcnow()
        proof = await self.get_by_token(token)
        order = await self.assignments.get_order(proof.order_id)
        item = await self.db.get(OrderItem, proof.order_item_id)
        status = effective_proof_status(proof, now)
        return {
            "proof": proof,
            "status": status,
            "can_respond": status == ProofStatus.PENDING.value,
            "order_number": order.order_number,
            "product_name": item.product_name if item else None,
            "variant_title": item.variant_title if item else None,
        }

    # ==================== Create / resend ====================

    async def create_proof_approval(
        self,
        order_id: uuid.UUID,
        order_item_id: uuid.UUID,
        assignment_id: uuid.UUID,
        proof_type: str,
        images: List[Dict[str, Any]],
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
        custom_message: Optional[str] = None,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[CustomerProofApproval, str]:
        """
        Create a pending proof approval and send the customer its link.

        Returns the approval and its token.
        """
        proof_type = getattr(proof_type, "value", proof_type)
        if proof_type not in PROOF_LABELS:
            raise ValidationFailed(
                f"Invalid proof type '{proof_type}'. Allowed: {', '.join(PROOF_LABELS)}",
                proof_type=proof_type,
            )
        if not images:
            raise ValidationFailed("At least one proof image is required")

        order = await self.assignments.get_order(order_id)
        item = await self.db.get(OrderItem, order_item_id)
        if not item or item.order_id != order.id:
            raise NotFound(
                "Order item",
                order_item_id,
                message=f"Order item {order_item_id} does not belong to order {order.order_number}",
            )

        assignment = await self.assignments.get_assignment(assignment_id)
        if assignment.order_id != order.id:
            raise NotFound(
                "Vendor assignment",
                assignment_id,
                message=f"Assignment {assignment_id} does not belong to order {order.order_number}",
            )
        self.assignments.ensure_can_act(actor, assignment)
        if is_terminal(assignment.status):
            raise InvalidAssignmentState(
                f"Cannot send proofs for a {assignment.status} assignment",
                vendor_assignment_id=assignment.id,
                status=assignment.status,
            )

        covered = await self.db.execute(
            select(OrderItemAssignment.id).where(
                OrderItemAssignment.vendor_assignment_id == assignment.id,
                OrderItemAssignment.order_item_id == item.id,
                OrderItemAssignment.status != ItemAssignmentStatus.CANCELLED.value,
            )
        )
        if covered.first() is None:
            raise ValidationFailed(
                f"Item {item.id} is not part of assignment {assignment.id}",
                order_item_id=item.id,
                vendor_assignment_id=assignment.id,
            )

        email = customer_email or order.customer_email
        if not email:
            raise ValidationFailed("Customer email is required: the order has none on file")

        now = now or utcnow()
        token = generate_approval_token()
        proof = CustomerProofApproval(
            order_id=order.id,
            order_item_id=item.id,
            vendor_assignment_id=assignment.id,
            proof_type=proof_type,
            status=ProofStatus.PENDING.value,
            approval_token=token,
            customer_email=email,
            customer_name=customer_name or order.customer_name,
            custom_message=custom_message,
            expires_at=now + timedelta(days=settings.PROOF_APPROVAL_EXPIRY_DAYS),
            created_by=actor.id if actor else None,
            images=[
                ProofImage(
                    order_item_id=item.id,
                    image_url=image["image_url"],
                    filename=image.get("filename"),
                    file_size=image.get("file_size"),
                    mime_type=image.get("mime_type"),
                    sort_order=index if image.get("sort_order") is None else image["sort_order"],
                )
                for index, image in enumerate(images)
            ],
        )
        self.db.add(proof)
        await self.db.flush()

        await self.production.get_or_create(assignment)
        await self.activity.log(
            action="CREATE_PROOF",
            entity_type="PROOF_APPROVAL",
            entity_id=proof.id,
            actor=actor,
            description=f"Sent {PROOF_LABELS[proof_type]} for order #{order.order_number} to {email}",
            extra_data={"order_item_id": str(item.id), "images": len(images)},
        )
        await self.db.commit()

        await self._send_approval_request(proof, order.order_number, now)
        return proof, token

    async def resend_approval(
        self,
        proof_id: uuid.UUID,
        actor: Optional[Actor] = None,
        now: Optional[datetime] = None,
    ) -> CustomerProofApproval:
        """Send the approval link again; only while the proof is still open."""
        now = now or utcnow()
        proof = await self.get_proof(proof_id)
        assignment = await self.assignments.get_assignment(proof.vendor_assignment_id)
        self.assignments.ensure_can_act(actor, assignment)
        self._ensure_open(proof, now)

        order = await self.assignments.get_order(proof.order_id)
        await self.activity.log(
            action="RESEND_PROOF",
            entity_type="PROOF_APPROVAL",
            entity_id=proof.id,
            actor=actor,
            description=f"Resent {PROOF_LABELS[proof.proof_type]} for order #{order.order_number}",
        )
        await self._send_approval_request(proof, order.order_number, now)
        return proof

    async def _send_approval_request(self, proof: CustomerProofApproval, order_number: str, now: datetime) -> None:
        delivery = await self.notifier.dispatch(
            recipient_type="customer",
            recipient=proof.customer_email,
            template="proof_approval_request",
            payload={
                "order_number": order_number,
                "proof_label": PROOF_LABELS[proof.proof_type],
                "customer_name": proof.customer_name,
                "custom_message": proof.custom_message,
                "approval_url": approval_url(proof.approval_token),
                "expires_at": proof.expires_at,
            },
        )
        if delivery is not None and delivery.status == DeliveryStatus.SENT.value:
            proof.sent_at = now
        await self.db.commit()

    # ==================== Customer response ====================

    def _ensure_open(self, proof: CustomerProofApproval, now: datetime) -> None:
        status = effective_proof_status(proof, now)
        if status == ProofStatus.EXPIRED.value:
            raise Expired(
                "This approval link has expired",
                proof_approval_id=proof.id,
                expires_at=proof.expires_at,
            )
        if status != ProofStatus.PENDING.value:
            raise AlreadyResolved(
                f"This proof has already been {status.replace('_', ' ')}",
                proof_approval_id=proof.id,
                status=status,
            )

    async def resolve_customer_approval(
        self,
        token: str,
        decision: str,
        response_notes: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CustomerProofApproval:
        """
        Record the customer's decision on a proof.

        Raises:
            NotFound: unknown token
            Expired: the proof expired before the customer answered
            AlreadyResolved: the proof was already answered
        """
        decision = getattr(decision, "value", decision)
        if decision not in CUSTOMER_DECISIONS:
            raise ValidationFailed(
                f"Invalid decision '{decision}'. Allowed: {', '.join(CUSTOMER_DECISIONS)}",
                decision=decision,
            )

        now = now or utcnow()
        proof = await self.get_by_token(token, for_update=True)
        self._ensure_open(proof, now)

        proof.status = decision
        proof.responded_at = now
        proof.response_notes = response_notes
        self.db.add(CustomerApprovalResponse(
            proof_approval_id=proof.id,
            decision=decision,
            notes=response_notes,
            ip_address=ip_address,
            user_agent=user_agent,
        ))

        blocked_reason = None
        if decision == ProofStatus.REVISION_REQUESTED.value:
            blocked_reason = response_notes or f"Customer requested revisions to the {PROOF_LABELS[proof.proof_type]}"

        assignment = await self.assignments.get_assignment(proof.vendor_assignment_id)
        await self.production.set_field(
            assignment,
            PRODUCTION_FIELD_BY_TYPE[proof.proof_type],
            decision,
            blocked_reason=blocked_reason,
        )

        await self.activity.log(
            action="RESOLVE_PROOF",
            entity_type="PROOF_APPROVAL",
            entity_id=proof.id,
            actor_type="customer",
            description=f"Customer {decision.replace('_', ' ')} the {PROOF_LABELS[proof.proof_type]}",
            extra_data={"decision": decision, "notes": response_notes},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.db.commit()

        logger.info(f"Proof {proof.id} resolved as {decision}")

        order = await self.assignments.get_order(proof.order_id)
        vendor = await self.assignments.get_vendor(assignment.vendor_id)
        await self.notifier.dispatch(
            recipient_type="vendor",
            recipient=vendor.email,
            template="proof_response_received",
            payload={
                "order_number": order.order_number,
                "proof_label": PROOF_LABELS[proof.proof_type],
                "decision": decision.replace("_", " "),
                "notes": response_notes,
                "proof_approval_id": str(proof.id),
            },
        )
        await self.db.commit()
        return proof

    # ==================== Expiry sweep ====================

    async def expire_stale_proofs(self, now: Optional[datetime] = None) -> int:
        """Persist ``expired`` on pending proofs past their expiry."""
        now = now or utcnow()
        result = await self.db.execute(
            update(CustomerProofApproval)
            .where(
                CustomerProofApproval.status == ProofStatus.PENDING.value,
                CustomerProofApproval.expires_at < now,
            )
            .values(status=ProofStatus.EXPIRED.value, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        return result.rowcount or 0
