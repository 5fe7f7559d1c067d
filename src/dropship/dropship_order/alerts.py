"""Administrator alerts by email.

Alerts are best effort: a failed alert is logged and never interrupts the
workflow that raised it.
"""

import structlog
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.dropship_order.events import (
    DropshipOrderConfigurationFailed,
    DropshipOrderPermanentlyFailed,
)
from dropship.settings import get_settings
from dropship.transport import get_email_adapter

logger = structlog.get_logger(__name__)


def notify_admins(subject: str, body: str) -> int:
    """Email every configured admin. Returns how many messages were accepted."""
    recipients = get_settings().admin_emails
    if not recipients:
        logger.warning("No admin recipients configured, alert not sent", subject=subject)
        return 0

    adapter = get_email_adapter()
    accepted = 0
    for address in recipients:
        try:
            result = adapter.send(to=address, subject=subject, body=body)
        except Exception as exc:
            logger.error("Admin alert could not be sent", to=address, subject=subject, error=str(exc))
            continue
        if result.get("status") == "failed":
            logger.error("Admin alert rejected", to=address, subject=subject, error=result.get("error"))
            continue
        accepted += 1
    return accepted


@dropship.event_handler(part_of=DropshipOrder)
class DropshipAdminAlerts:
    """Tells administrators about dropship orders that need a human."""

    @handle(DropshipOrderPermanentlyFailed)
    def on_permanently_failed(self, event: DropshipOrderPermanentlyFailed) -> None:
        logger.error(
            "Dropship order failed permanently",
            dropship_order_id=str(event.dropship_order_id),
            supplier_id=str(event.supplier_id),
            retry_count=event.retry_count,
            reason=event.reason,
        )
        notify_admins(
            subject=f"Dropship order {event.dropship_order_id} failed",
            body=(
                f"Dropship order {event.dropship_order_id} for order {event.order_id} "
                f"was cancelled after {event.retry_count} retries.\n\n"
                f"Supplier: {event.supplier_id}\n"
                f"Reason: {event.reason}\n"
                f"Failed at: {event.failed_at.isoformat()}"
            ),
        )

    @handle(DropshipOrderConfigurationFailed)
    def on_configuration_failed(self, event: DropshipOrderConfigurationFailed) -> None:
        logger.error(
            "Supplier integration misconfigured",
            dropship_order_id=str(event.dropship_order_id),
            supplier_id=str(event.supplier_id),
            integration_id=str(event.integration_id) if event.integration_id else None,
            error=event.error,
        )
        notify_admins(
            subject=f"Supplier integration needs attention ({event.supplier_id})",
            body=(
                f"Dropship order {event.dropship_order_id} is on hold.\n\n"
                f"Integration: {event.integration_id or 'none'}\n"
                f"Error: {event.error}"
            ),
        )
