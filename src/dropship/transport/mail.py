"""Email transport — orders mailed to the supplier's order desk.

Delivery is confirmed out of band, so a queued message counts as sent.
"""

import structlog

from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.errors import ConfigurationError, TransientTransportError
from dropship.transport import get_email_adapter
from dropship.transport.ftp import order_filename
from dropship.transport.payload import order_csv, order_email_body
from dropship.transport.retry import call_with_retry

logger = structlog.get_logger(__name__)


def submit_order(address: str | None, dropship_order: DropshipOrder, integration=None) -> dict:
    if not address:
        raise ConfigurationError("No email address configured for supplier orders")

    attachments = {}
    if integration is not None:
        attachments[order_filename(integration, dropship_order)] = order_csv(dropship_order)

    def _send() -> dict:
        result = get_email_adapter().send(
            to=address,
            subject=f"New order {dropship_order.id}",
            body=order_email_body(dropship_order),
            attachments=attachments,
        )
        if result.get("status") == "failed":
            raise TransientTransportError(f"Email delivery failed: {result.get('error', 'unknown error')}")
        return result

    result = call_with_retry(_send)
    logger.info(
        "Order emailed to supplier",
        dropship_order_id=str(dropship_order.id),
        email_address=address,
        message_id=result.get("message_id"),
    )
    return {
        "method": "email",
        "supplier_order_id": None,
        "estimated_delivery": None,
        "response": {"sent_to": address, "message_id": result.get("message_id")},
    }
