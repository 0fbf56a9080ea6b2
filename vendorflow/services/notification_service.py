"""
Notification Dispatch

Hands vendor, admin and customer notifications to a delivery sender (email,
Slack, SMS). Every dispatch is recorded in ``notification_deliveries``; a
sender failure marks that row ``failed`` and is logged, but never propagates,
so the state change that triggered the notification is never rolled back.

The default sender only logs. Deployments plug a real provider in by passing
``sender=`` to ``NotificationService``.
"""
import logging
from typing import Optional, Dict, Any, Callable, Awaitable

from sqlalchemy.ext.asyncio import AsyncSession

from vendorflow.core.timeutils import utcnow
from vendorflow.models.notification import NotificationDelivery, DeliveryStatus


logger = logging.getLogger(__name__)

Sender = Callable[[NotificationDelivery], Awaitable[None]]


# Subject lines per template
SUBJECTS: Dict[str, str] = {
    "vendor_assignment_created": "New order assigned: #{order_number}",
    "assignment_status_changed": "Order #{order_number} assignment is now {status}",
    "proof_approval_request": "Please review your {proof_label} for order #{order_number}",
    "proof_response_received": "Customer {decision} the {proof_label} for order #{order_number}",
    "order_alert": "{title}",
    "payout_created": "Payout of {amount} {currency} scheduled",
}


async def log_sender(delivery: NotificationDelivery) -> None:
    """Placeholder sender: logs instead of delivering."""
    logger.info(
        f"[NOTIFICATION] {delivery.channel.upper()} to {delivery.recipient_type}:{delivery.recipient} "
        f"template={delivery.template}"
    )


def render_subject(template: str, payload: Dict[str, Any]) -> str:
    subject = SUBJECTS.get(template, template)
    try:
        return subject.format(**payload)
    except KeyError as e:
        logger.warning(f"Missing template variable for {template}: {e}")
        return subject


class NotificationService:
    """Records and dispatches notifications without blocking the caller."""

    def __init__(self, db: AsyncSession, sender: Optional[Sender] = None):
        self.db = db
        self.sender = sender or log_sender

    async def dispatch(
        self,
        recipient_type: str,
        recipient: Optional[str],
        template: str,
        payload: Optional[Dict[str, Any]] = None,
        channel: str = "email",
    ) -> Optional[NotificationDelivery]:
        """
        Record a notification and hand it to the sender.

        Returns the delivery row, or None when there is no recipient address.
        """
        if not recipient:
            logger.warning(f"Skipping {template} notification: no {recipient_type} recipient")
            return None

        payload = dict(payload or {})
        payload.setdefault("subject", render_subject(template, payload))

        delivery = NotificationDelivery(
            recipient_type=recipient_type,
            recipient=recipient,
            channel=channel,
            template=template,
            payload=payload,
            status=DeliveryStatus.PENDING.value,
        )
        self.db.add(delivery)
        await self.db.flush()

        try:
            await self.sender(delivery)
        except Exception as e:
            delivery.status = DeliveryStatus.FAILED.value
            delivery.error_message = str(e)[:1000]
            logger.warning(f"Notification {delivery.id} ({template}) to {recipient} failed: {e}")
        else:
            delivery.status = DeliveryStatus.SENT.value
            delivery.sent_at = utcnow()

        await self.db.flush()
        return delivery
