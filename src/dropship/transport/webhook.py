"""Outbound webhook transport — a signed ``order.created`` event."""

from datetime import UTC, datetime
from uuid import uuid4

import httpx
import structlog

from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.errors import ConfigurationError
from dropship.settings import get_settings
from dropship.supplier.integration import SupplierIntegration
from dropship.transport import get_http_client
from dropship.transport.payload import order_payload
from dropship.transport.retry import as_transport_error, call_with_retry
from dropship.webhook.signature import canonical_json, sign

logger = structlog.get_logger(__name__)

EVENT_TYPE = "order.created"


def build_event(dropship_order: DropshipOrder) -> dict:
    return {
        "event_type": EVENT_TYPE,
        "order": order_payload(dropship_order),
        "timestamp": datetime.now(UTC).isoformat(),
        "webhook_id": f"wh_{uuid4().hex}",
    }


def submit_order(integration: SupplierIntegration, dropship_order: DropshipOrder) -> dict:
    """POST the signed event to the integration's webhook URL.

    The body is the canonical JSON of the event; ``X-Webhook-Signature``
    carries its HMAC-SHA256 under the integration secret (empty when the
    integration has no secret).
    """
    if not integration.webhook_url:
        raise ConfigurationError("Webhook URL not configured")

    event = build_event(dropship_order)
    body = canonical_json(event)
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": sign(event, integration.webhook_secret) if integration.webhook_secret else "",
        "X-Event-Type": EVENT_TYPE,
    }
    timeout = float(integration.option("timeout", get_settings().api_timeout_seconds))

    def _post() -> httpx.Response:
        try:
            response = get_http_client().post(
                integration.webhook_url,
                content=body.encode("utf-8"),
                headers=headers,
                timeout=timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise as_transport_error(exc, "Webhook delivery failed") from exc
        return response

    response = call_with_retry(_post)
    try:
        response_data = response.json()
    except ValueError:
        response_data = None

    logger.info(
        "Order webhook delivered to supplier",
        dropship_order_id=str(dropship_order.id),
        webhook_id=event["webhook_id"],
    )
    return {
        "method": "webhook",
        "supplier_order_id": None,
        "estimated_delivery": None,
        "response": {"webhook_id": event["webhook_id"], "response_data": response_data},
    }
