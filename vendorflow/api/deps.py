from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.database import get_db
from vendorflow.core.security import Actor, verify_access_token


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """
    Dependency to get the authenticated caller.

    Identities live in the identity service; the token's claims are trusted
    as-is once the signature and expiry check out.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    actor = verify_access_token(credentials.credentials)
    if actor is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception
    return actor


async def require_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Dependency that only lets admins through."""
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return actor


async def require_vendor(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Dependency that only lets vendor users through."""
    if not actor.is_vendor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Vendor access required",
        )
    return actor


# Type aliases for cleaner dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
VendorActor = Annotated[Actor, Depends(require_vendor)]
DB = Annotated[AsyncSession, Depends(get_db)]
