"""
Fulfillment Status Machine

This module is the single source of truth for every status transition in the
fulfillment workflow: vendor assignments, tracking entries, customer proofs,
payouts and ledger transactions. Services call ``validate_*`` before writing a
new status; an illegal change raises ``InvalidTransition`` and nothing is
applied.

It also owns the two derived statuses that are never trusted from storage:
- the order business status, computed from the order's assignments
- the effective proof status, which applies lazy token expiry
"""

from typing import Dict, Iterable, List, Optional
from datetime import datetime

from vendorflow.core.exceptions import InvalidTransition
from vendorflow.core.timeutils import as_utc
from vendorflow.models.assignment import AssignmentStatus
from vendorflow.models.financial import PayoutStatus, TransactionStatus
from vendorflow.models.order import OrderBusinessStatus
from vendorflow.models.proof import ProofStatus
from vendorflow.models.tracking import TrackingStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
ASSIGNMENT_TRANSITIONS: Dict[str, List[str]] = {
    AssignmentStatus.ASSIGNED.value: [
        AssignmentStatus.ACCEPTED.value,     # Vendor accepts the work
        AssignmentStatus.CANCELLED.value,
    ],
    AssignmentStatus.ACCEPTED.value: [
        AssignmentStatus.IN_PROGRESS.value,  # Production started
        AssignmentStatus.CANCELLED.value,
    ],
    AssignmentStatus.IN_PROGRESS.value: [
        AssignmentStatus.COMPLETED.value,
        AssignmentStatus.CANCELLED.value,
    ],
    AssignmentStatus.COMPLETED.value: [],    # Terminal
    AssignmentStatus.CANCELLED.value: [],    # Terminal
}

TRACKING_TRANSITIONS: Dict[str, List[str]] = {
    TrackingStatus.PENDING.value: [
        TrackingStatus.SHIPPED.value,
        TrackingStatus.EXCEPTION.value,
    ],
    TrackingStatus.SHIPPED.value: [
        TrackingStatus.IN_TRANSIT.value,
        TrackingStatus.DELIVERED.value,
        TrackingStatus.EXCEPTION.value,
    ],
    TrackingStatus.IN_TRANSIT.value: [
        TrackingStatus.DELIVERED.value,
        TrackingStatus.EXCEPTION.value,
    ],
    TrackingStatus.EXCEPTION.value: [       # Carrier recovered the parcel
        TrackingStatus.SHIPPED.value,
        TrackingStatus.IN_TRANSIT.value,
        TrackingStatus.DELIVERED.value,
    ],
    TrackingStatus.DELIVERED.value: [],      # Terminal
}

PROOF_TRANSITIONS: Dict[str, List[str]] = {
    ProofStatus.PENDING.value: [
        ProofStatus.APPROVED.value,
        ProofStatus.REJECTED.value,
        ProofStatus.REVISION_REQUESTED.value,
        ProofStatus.EXPIRED.value,           # Expiry sweep only
    ],
    ProofStatus.APPROVED.value: [],
    ProofStatus.REJECTED.value: [],
    ProofStatus.REVISION_REQUESTED.value: [],  # A revision is a new proof
    ProofStatus.EXPIRED.value: [],
}

PAYOUT_TRANSITIONS: Dict[str, List[str]] = {
    PayoutStatus.PENDING.value: [PayoutStatus.PROCESSING.value],
    PayoutStatus.PROCESSING.value: [
        PayoutStatus.COMPLETED.value,
        PayoutStatus.FAILED.value,
    ],
    PayoutStatus.COMPLETED.value: [],
    PayoutStatus.FAILED.value: [],
}

TRANSACTION_TRANSITIONS: Dict[str, List[str]] = {
    TransactionStatus.PENDING.value: [
        TransactionStatus.PROCESSING.value,
        TransactionStatus.COMPLETED.value,
        TransactionStatus.CANCELLED.value,
    ],
    TransactionStatus.PROCESSING.value: [
        TransactionStatus.COMPLETED.value,
        TransactionStatus.FAILED.value,
    ],
    TransactionStatus.COMPLETED.value: [],
    TransactionStatus.FAILED.value: [],
    TransactionStatus.CANCELLED.value: [],
}

# Human-readable action names for assignment transitions
ASSIGNMENT_ACTIONS: Dict[tuple, str] = {
    (AssignmentStatus.ASSIGNED.value, AssignmentStatus.ACCEPTED.value): "Accept Assignment",
    (AssignmentStatus.ASSIGNED.value, AssignmentStatus.CANCELLED.value): "Cancel",
    (AssignmentStatus.ACCEPTED.value, AssignmentStatus.IN_PROGRESS.value): "Start Work",
    (AssignmentStatus.ACCEPTED.value, AssignmentStatus.CANCELLED.value): "Cancel",
    (AssignmentStatus.IN_PROGRESS.value, AssignmentStatus.COMPLETED.value): "Complete",
    (AssignmentStatus.IN_PROGRESS.value, AssignmentStatus.CANCELLED.value): "Cancel",
}

GRAPHS: Dict[str, Dict[str, List[str]]] = {
    "assignment": ASSIGNMENT_TRANSITIONS,
    "tracking": TRACKING_TRANSITIONS,
    "proof": PROOF_TRANSITIONS,
    "payout": PAYOUT_TRANSITIONS,
    "transaction": TRANSACTION_TRANSITIONS,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str, graph: str = "assignment") -> bool:
    """Check if a transition is allowed."""
    return new_status in GRAPHS[graph].get(current_status, [])


def get_allowed_transitions(current_status: str, graph: str = "assignment") -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return list(GRAPHS[graph].get(current_status, []))


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for an assignment transition."""
    return ASSIGNMENT_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str, graph: str = "assignment") -> bool:
    """Is this a terminal (final) state?"""
    return status in GRAPHS[graph] and not GRAPHS[graph][status]


def validate_transition(current_status: str, new_status: str, graph: str = "assignment") -> None:
    """
    Validate a status transition. Raises InvalidTransition if invalid.

    Re-applying the current status is not a transition and is rejected too.
    """
    if not can_transition(current_status, new_status, graph):
        raise InvalidTransition(graph, current_status, new_status, get_allowed_transitions(current_status, graph))


def validate_assignment_transition(current_status: str, new_status: str) -> None:
    validate_transition(current_status, new_status, "assignment")


def validate_tracking_transition(current_status: str, new_status: str) -> None:
    validate_transition(current_status, new_status, "tracking")


def validate_payout_transition(current_status: str, new_status: str) -> None:
    validate_transition(current_status, new_status, "payout")


def validate_transaction_transition(current_status: str, new_status: str) -> None:
    validate_transition(current_status, new_status, "transaction")


# =============================================================================
# DERIVED STATUSES
# =============================================================================

def derive_order_status(order, assignments: Iterable) -> str:
    """
    Compute the order's business status from its vendor assignments.

    - cancelled: the store reports the order cancelled/refunded
    - unassigned: no non-cancelled assignment
    - completed: every assignment completed or cancelled, at least one completed
    - in_progress: work started somewhere (in progress, or partly completed)
    - assigned: otherwise
    """
    if order is not None and order.is_cancelled:
        return OrderBusinessStatus.CANCELLED.value

    statuses = [a.status for a in assignments]
    active = [s for s in statuses if s != AssignmentStatus.CANCELLED.value]
    if not active:
        return OrderBusinessStatus.UNASSIGNED.value

    completed = [s for s in active if s == AssignmentStatus.COMPLETED.value]
    if len(completed) == len(active):
        return OrderBusinessStatus.COMPLETED.value
    if completed or AssignmentStatus.IN_PROGRESS.value in active:
        return OrderBusinessStatus.IN_PROGRESS.value
    return OrderBusinessStatus.ASSIGNED.value


def effective_proof_status(proof, now: datetime) -> str:
    """
    Status of a proof approval as of ``now``.

    A pending proof past its expiry is expired even while the stored column
    still reads pending. Use this instead of ``proof.status`` on every path.
    """
    if proof.status == ProofStatus.PENDING.value and now > as_utc(proof.expires_at):
        return ProofStatus.EXPIRED.value
    return proof.status


def is_proof_open(proof, now: datetime) -> bool:
    """Can the customer still answer this proof?"""
    return effective_proof_status(proof, now) == ProofStatus.PENDING.value


def is_expiring_soon(proof, now: datetime, window) -> bool:
    """Pending and due to expire within ``window`` (a timedelta)."""
    if not is_proof_open(proof, now):
        return False
    return as_utc(proof.expires_at) - now <= window


def get_assignment_timestamp_field(new_status: str) -> Optional[str]:
    """Lifecycle timestamp column stamped when an assignment enters ``new_status``."""
    return {
        AssignmentStatus.ACCEPTED.value: "accepted_at",
        AssignmentStatus.IN_PROGRESS.value: "started_at",
        AssignmentStatus.COMPLETED.value: "completed_at",
        AssignmentStatus.CANCELLED.value: "cancelled_at",
    }.get(new_status)
