"""
Proof Approval API Endpoints

Vendor/admin endpoints to send design and production proofs, plus the
public endpoints behind the customer's approval link.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from vendorflow.api.deps import DB, CurrentActor
from vendorflow.core.timeutils import utcnow
from vendorflow.models.proof import ProofStatus
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.proof import (
    ProofCreate,
    ProofResponse,
    ProofCreatedResponse,
    ProofImageResponse,
    ProofStatsResponse,
    CustomerProofView,
    CustomerDecision,
)
from vendorflow.services.proof_service import ProofService, approval_url
from vendorflow.services.status_machine import effective_proof_status

logger = logging.getLogger(__name__)
router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _customer_view(view: dict, can_respond: Optional[bool] = None) -> CustomerProofView:
    proof = view["proof"]
    return CustomerProofView(
        proof_type=proof.proof_type,
        status=view["status"],
        can_respond=view["can_respond"] if can_respond is None else can_respond,
        order_number=view["order_number"],
        product_name=view["product_name"],
        variant_title=view["variant_title"],
        customer_name=proof.customer_name,
        custom_message=proof.custom_message,
        expires_at=proof.expires_at,
        responded_at=proof.responded_at,
        images=[ProofImageResponse.model_validate(image) for image in proof.images],
    )


# ==================== Vendor / admin ====================

@router.post("", response_model=ApiResponse[ProofCreatedResponse], status_code=status.HTTP_201_CREATED)
async def create_proof(data: ProofCreate, db: DB, actor: CurrentActor):
    """Upload proof images and email the customer an approval link."""
    proof, token = await ProofService(db).create_proof_approval(
        data.order_id,
        data.order_item_id,
        data.vendor_assignment_id,
        data.proof_type.value,
        [image.model_dump() for image in data.images],
        customer_email=data.customer_email,
        customer_name=data.customer_name,
        custom_message=data.custom_message,
        actor=actor,
    )
    return ok(
        ProofCreatedResponse(proof=ProofResponse.model_validate(proof), approval_url=approval_url(token)),
        message="Proof sent to customer",
    )


@router.get("", response_model=ApiResponse[List[ProofResponse]])
async def list_proofs(
    db: DB,
    actor: CurrentActor,
    order_id: Optional[UUID] = Query(None),
    status_filter: Optional[ProofStatus] = Query(None, alias="status"),
):
    """Proofs with their effective status. Vendors only see their own."""
    now = utcnow()
    proofs = await ProofService(db).list_proofs(
        order_id=order_id,
        vendor_id=actor.vendor_id if actor.is_vendor else None,
        status=status_filter.value if status_filter else None,
        now=now,
    )
    response = []
    for proof in proofs:
        item = ProofResponse.model_validate(proof)
        item.status = effective_proof_status(proof, now)
        response.append(item)
    return ok(response)


@router.get("/stats", response_model=ApiResponse[ProofStatsResponse])
async def get_proof_stats(db: DB, actor: CurrentActor):
    stats = await ProofService(db).get_proof_stats(
        vendor_id=actor.vendor_id if actor.is_vendor else None,
    )
    return ok(stats)


@router.get("/{proof_id}", response_model=ApiResponse[ProofResponse])
async def get_proof(proof_id: UUID, db: DB, actor: CurrentActor):
    """One proof with its images and effective status."""
    proof = await ProofService(db).get_proof_for_actor(proof_id, actor=actor)
    response = ProofResponse.model_validate(proof)
    response.status = effective_proof_status(proof, utcnow())
    return ok(response)


@router.post("/{proof_id}/resend", response_model=ApiResponse[ProofResponse])
async def resend_proof(proof_id: UUID, db: DB, actor: CurrentActor):
    proof = await ProofService(db).resend_approval(proof_id, actor=actor)
    return ok(ProofResponse.model_validate(proof), message="Approval request sent again")


# ==================== Customer (public, token-authorized) ====================

@router.get("/customer/{token}", response_model=ApiResponse[CustomerProofView])
async def get_customer_proof(token: str, db: DB):
    """What the customer sees behind the approval link."""
    view = await ProofService(db).get_approval_by_token(token)
    return ok(_customer_view(view))


@router.post("/customer/{token}/approve", response_model=ApiResponse[CustomerProofView])
async def respond_to_proof(token: str, data: CustomerDecision, request: Request, db: DB):
    """Record the customer's decision: approved, rejected or revision_requested."""
    service = ProofService(db)
    await service.resolve_customer_approval(
        token,
        data.decision,
        response_notes=data.notes,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    view = await service.get_approval_by_token(token)
    return ok(_customer_view(view, can_respond=False), message="Thank you for your response")
