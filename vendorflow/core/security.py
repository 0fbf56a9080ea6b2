from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from vendorflow.config import settings


ADMIN = "admin"
VENDOR = "vendor"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as asserted by the identity service's token."""
    id: uuid.UUID
    user_type: str
    vendor_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.user_type == ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.user_type == VENDOR

    def owns_vendor(self, vendor_id: uuid.UUID) -> bool:
        return self.is_admin or (self.is_vendor and self.vendor_id == vendor_id)


def create_access_token(
    subject: str | uuid.UUID,
    user_type: str = ADMIN,
    vendor_id: Optional[uuid.UUID] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token issuance belongs to the identity service; this helper exists for
    operational tooling and tests.
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid.uuid4()),
        "type": "access",
        "user_type": user_type,
    }
    if vendor_id:
        to_encode["vendor_id"] = str(vendor_id)

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[Actor]:
    """Verify an access token and return the actor it identifies."""
    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None

    user_type = payload.get("user_type")
    if user_type not in (ADMIN, VENDOR):
        return None

    try:
        actor_id = uuid.UUID(payload["sub"])
        vendor_id = uuid.UUID(payload["vendor_id"]) if payload.get("vendor_id") else None
    except (KeyError, ValueError):
        return None

    # Vendor tokens are meaningless without the vendor they act for
    if user_type == VENDOR and vendor_id is None:
        return None

    return Actor(id=actor_id, user_type=user_type, vendor_id=vendor_id)
