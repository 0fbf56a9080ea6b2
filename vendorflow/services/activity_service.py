from typing import Optional, Dict, Any, List
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.security import Actor
from vendorflow.models.activity_log import ActivityLog


class ActivityService:
    """
    Activity log for fulfillment actions.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        actor: Optional[Actor] = None,
        description: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        actor_type: Optional[str] = None,
    ) -> ActivityLog:
        """
        Create an activity log entry.

        Args:
            action: The action performed (ASSIGN_VENDOR, ADD_TRACKING, etc.)
            entity_type: Type of entity (ORDER, VENDOR_ASSIGNMENT, PROOF, etc.)
            entity_id: ID of the affected entity
            actor: Authenticated caller, None for customers and jobs
            description: Human-readable description
            extra_data: Opaque context stored as JSON
            ip_address: Client IP address
            user_agent: Client user agent
            actor_type: Overrides the actor's type (e.g. "customer")

        Returns:
            The created ActivityLog entry
        """
        entry = ActivityLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor.id if actor else None,
            actor_type=actor_type or (actor.user_type if actor else "system"),
            description=description,
            extra_data=extra_data,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def get_entity_activity(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        limit: int = 50,
    ) -> List[ActivityLog]:
        """Most recent activity for one entity."""
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.entity_type == entity_type, ActivityLog.entity_id == entity_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
