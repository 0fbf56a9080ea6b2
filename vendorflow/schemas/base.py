"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models inherit from
BaseResponseSchema. Every endpoint answers with the ApiResponse envelope:

    {"success": true, "data": ..., "message": "..."}
    {"success": false, "message": "...", "errors": [{"code": "..."}]}
"""

from typing import Any, Generic, List, Optional, TypeVar
from uuid import UUID
from pydantic import BaseModel, ConfigDict


T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class TrackingResponse(BaseResponseSchema):
            id: UUID
            tracking_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    These schemas accept string UUIDs from the frontend and convert them to
    UUID objects.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""
    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    errors: Optional[List[Any]] = None


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """Build a success envelope."""
    response = {"success": True, "data": data}
    if message:
        response["message"] = message
    return response


# Type aliases for common UUID patterns
OptionalUUID = Optional[UUID]
