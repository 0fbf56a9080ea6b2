import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.exceptions import ValidationFailed
from vendorflow.core.security import Actor
from vendorflow.models.assignment import VendorAssignment
from vendorflow.models.proof import OrderProductionStatus
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.activity_service import ActivityService


PRODUCTION_FIELDS = ("design_proof_status", "production_proof_status")


class ProductionStatusService:
    """Design/production proof status overlay, one row per assignment."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self, assignment: VendorAssignment) -> OrderProductionStatus:
        result = await self.db.execute(
            select(OrderProductionStatus).where(
                OrderProductionStatus.order_id == assignment.order_id,
                OrderProductionStatus.vendor_assignment_id == assignment.id,
            )
        )
        production_status = result.scalar_one_or_none()
        if production_status is None:
            production_status = OrderProductionStatus(
                order_id=assignment.order_id,
                vendor_assignment_id=assignment.id,
                design_proof_status="pending",
                production_proof_status="pending",
            )
            self.db.add(production_status)
            await self.db.flush()
        return production_status

    async def get_production_status(self, assignment_id: uuid.UUID, actor: Optional[Actor] = None) -> OrderProductionStatus:
        assignments = AssignmentService(self.db)
        assignment = await assignments.get_assignment(assignment_id)
        assignments.ensure_can_act(actor, assignment)
        return await self.get_or_create(assignment)

    async def set_field(
        self,
        assignment: VendorAssignment,
        field: str,
        value: str,
        blocked_reason: Optional[str] = None,
        updated_by: Optional[uuid.UUID] = None,
    ) -> OrderProductionStatus:
        """
        Write one status field. ``blocked_reason=""`` clears the reason,
        ``None`` leaves it untouched.
        """
        if field not in PRODUCTION_FIELDS:
            raise ValidationFailed(
                f"Invalid production status field '{field}'. Allowed: {', '.join(PRODUCTION_FIELDS)}",
                field=field,
            )
        value = (value or "").strip()
        if not value or len(value) > 50:
            raise ValidationFailed("Status value must be 1-50 characters", field=field)

        production_status = await self.get_or_create(assignment)
        setattr(production_status, field, value)
        if blocked_reason is not None:
            production_status.blocked_reason = blocked_reason or None
        production_status.updated_by = updated_by
        await self.db.flush()
        return production_status

    async def update_production_status(
        self,
        assignment_id: uuid.UUID,
        field: str,
        value: str,
        blocked_reason: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> OrderProductionStatus:
        """Manual update by the assigned vendor or an admin."""
        assignments = AssignmentService(self.db)
        assignment = await assignments.get_assignment(assignment_id)
        assignments.ensure_can_act(actor, assignment)

        production_status = await self.set_field(
            assignment,
            field,
            value,
            blocked_reason=blocked_reason,
            updated_by=actor.id if actor else None,
        )
        await ActivityService(self.db).log(
            action="UPDATE_PRODUCTION_STATUS",
            entity_type="VENDOR_ASSIGNMENT",
            entity_id=assignment.id,
            actor=actor,
            description=f"{field} set to {value}",
            extra_data={"field": field, "value": value, "blocked_reason": blocked_reason},
        )
        await self.db.commit()
        return production_status
