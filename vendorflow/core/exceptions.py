"""
Domain errors for the fulfillment core.

Every error carries a stable ``code`` string and the HTTP status it maps to.
Services raise them; the API layer turns them into the standard
``{success: false, message, errors}`` envelope (see ``vendorflow.main``).
"""
from typing import Any, Optional

from fastapi import status


class DomainError(Exception):
    """Base class for business-rule violations."""

    code = "DOMAIN_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_error(self) -> dict[str, Any]:
        return {"code": self.code, **self.details}


class NotFound(DomainError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: Optional[Any] = None, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} not found",
            entity=entity,
            entity_id=entity_id,
        )


class InvalidTransition(DomainError):
    code = "INVALID_TRANSITION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, current: str, target: str, allowed: Optional[list[str]] = None):
        allowed = allowed or []
        message = f"Cannot transition {entity} from '{current}' to '{target}'."
        if allowed:
            message += f" Allowed: {', '.join(allowed)}"
        else:
            message += f" '{current}' is a terminal status"
        super().__init__(message, entity=entity, current=current, target=target, allowed=allowed)


class OverAllocation(DomainError):
    code = "OVER_ALLOCATION"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, order_item_id: Any, requested: int, remaining: int):
        super().__init__(
            f"requested quantity {requested} exceeds remaining {remaining} for item {order_item_id}",
            order_item_id=order_item_id,
            requested=requested,
            remaining=remaining,
        )


class InvalidAssignmentState(DomainError):
    code = "INVALID_ASSIGNMENT_STATE"
    status_code = status.HTTP_409_CONFLICT


class Expired(DomainError):
    code = "EXPIRED"
    status_code = status.HTTP_410_GONE


class AlreadyResolved(DomainError):
    code = "ALREADY_RESOLVED"
    status_code = status.HTTP_409_CONFLICT


class Unauthorized(DomainError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_403_FORBIDDEN


class VendorInactive(DomainError):
    code = "VENDOR_INACTIVE"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class DuplicateFullAssignment(DomainError):
    code = "DUPLICATE_FULL_ASSIGNMENT"
    status_code = status.HTTP_409_CONFLICT


class InvalidAssignmentType(DomainError):
    code = "INVALID_ASSIGNMENT_TYPE"
    status_code = status.HTTP_400_BAD_REQUEST


class DuplicatePayoutInclusion(DomainError):
    code = "DUPLICATE_PAYOUT_INCLUSION"
    status_code = status.HTTP_409_CONFLICT


class TransactionNotSettled(DomainError):
    code = "TRANSACTION_NOT_SETTLED"
    status_code = status.HTTP_409_CONFLICT


class ValidationFailed(DomainError):
    code = "VALIDATION_FAILED"
    status_code = status.HTTP_400_BAD_REQUEST
