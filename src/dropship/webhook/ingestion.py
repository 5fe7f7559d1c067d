"""Inbound supplier webhooks.

Flow:
    1. Work out which supplier sent the event (``supplier_id``/``source``/
       ``from``/``supplier_name`` by id or name, else the integration owning
       the ``api_key``). Unidentifiable events are rejected outright.
    2. Verify the HMAC signature when the integration has a webhook secret.
       A bad or missing signature is rejected before anything is touched,
       including the integration's failure counter.
    3. Apply the event through ``ProcessSupplierWebhook``. Success resets the
       integration's failure counter in the same unit of work; any exception
       bumps the counter in a separate write and is re-raised so the sender
       redelivers.

Every order event is idempotent: re-applying a status the order already has
is a no-op, and nothing moves an order out of a terminal status or backwards
along its lifecycle.
"""

import json
from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.backoff import next_retry_at
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.errors import InvalidWebhookSignature, SupplierNotIdentified
from dropship.queues import DropshipQueue
from dropship.settings import get_settings
from dropship.supplier.health import record_integration_failure
from dropship.supplier.integration import SupplierIntegration
from dropship.supplier.lookups import (
    active_integration_for,
    find_supplier,
    find_supplier_by_name,
    find_supplier_product,
    integration_by_api_key,
)
from dropship.supplier.supplier import Supplier
from dropship.supplier.supplier_product import SupplierProduct
from dropship.transport.payload import to_minor_units
from dropship.webhook.signature import SIGNATURE_FIELD, verify
from dropship.webhook.status_map import map_supplier_status

logger = structlog.get_logger(__name__)


class WebhookEvent:
    ORDER_STATUS_CHANGED = "order.status_changed"
    ORDER_SHIPPED = "order.shipped"
    ORDER_DELIVERED = "order.delivered"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_REJECTED = "order.rejected"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_STOCK_CHANGED = "product.stock_changed"
    PRODUCT_DISCONTINUED = "product.discontinued"


EVENT_ALIASES = {
    "order.updated": WebhookEvent.ORDER_STATUS_CHANGED,
    "product.price_changed": WebhookEvent.PRODUCT_UPDATED,
    "inventory.updated": WebhookEvent.PRODUCT_STOCK_CHANGED,
}


def event_type_of(payload: dict) -> str:
    raw = payload.get("event_type") or payload.get("type") or "unknown"
    return EVENT_ALIASES.get(raw, raw)


# ---------------------------------------------------------------------------
# Identification & authenticity
# ---------------------------------------------------------------------------
def identify_supplier(payload: dict) -> tuple[Supplier, SupplierIntegration]:
    """Resolve the sending supplier and the integration its events belong to."""
    supplier = None
    integration = None

    for key in ("supplier_id", "source", "from", "supplier_name"):
        value = payload.get(key)
        if value:
            supplier = find_supplier(str(value)) or find_supplier_by_name(str(value))
            if supplier is not None:
                break

    if supplier is None and payload.get("api_key"):
        integration = integration_by_api_key(str(payload["api_key"]))
        if integration is not None:
            supplier = find_supplier(integration.supplier_id)

    if supplier is None:
        raise SupplierNotIdentified("Could not identify supplier for webhook")

    integration = integration or active_integration_for(str(supplier.id))
    if integration is None:
        raise SupplierNotIdentified(f"Supplier {supplier.id} has no active integration")
    return supplier, integration


def verify_webhook_signature(payload: dict, integration: SupplierIntegration) -> None:
    if not integration.webhook_secret:
        return
    if not payload.get(SIGNATURE_FIELD):
        raise InvalidWebhookSignature("Webhook signature missing")
    if not verify(payload, integration.webhook_secret):
        raise InvalidWebhookSignature("Webhook signature validation failed")


# ---------------------------------------------------------------------------
# Order events
# ---------------------------------------------------------------------------
def _section(payload: dict, *keys: str) -> dict:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _parse_datetime(value) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def find_dropship_order(supplier_id: str, order_data: dict) -> DropshipOrder | None:
    """Locate the order by our id, falling back to the supplier's reference."""
    external_id = order_data.get("external_order_id") or order_data.get("order_id")
    supplier_order_id = order_data.get("supplier_order_id") or order_data.get("id")
    if not external_id and not supplier_order_id:
        raise ValidationError({"order": ["No order identifier found in webhook"]})

    repo = current_domain.repository_for(DropshipOrder)
    if external_id:
        try:
            dropship_order = repo.get(str(external_id))
        except ObjectNotFoundError:
            dropship_order = None
        if dropship_order is not None and str(dropship_order.supplier_id) == str(supplier_id):
            return dropship_order

    if supplier_order_id:
        matches = repo._dao.query.filter(supplier_id=str(supplier_id), supplier_order_id=str(supplier_order_id))
        results = matches.all().items
        if results:
            return results[0]
    return None


def apply_supplier_status(
    dropship_order: DropshipOrder,
    target: DropshipStatus,
    order_data: dict,
    tracking: dict | None = None,
    reason: str | None = None,
) -> bool:
    """Move the order to ``target`` as reported by its supplier.

    Returns False, without raising, when the order is already there or the
    move would leave a terminal status or go backwards.
    """
    if dropship_order.current_status == target:
        return False
    if dropship_order.is_terminal or not dropship_order.can_transition_to(target):
        logger.warning(
            "Supplier status change ignored",
            dropship_order_id=str(dropship_order.id),
            current_status=dropship_order.status,
            reported_status=target.value,
        )
        return False

    supplier_order_id = order_data.get("supplier_order_id")
    if supplier_order_id and not dropship_order.supplier_order_id:
        dropship_order.supplier_order_id = str(supplier_order_id)

    if target == DropshipStatus.CONFIRMED_BY_SUPPLIER:
        return dropship_order.mark_confirmed(supplier_order_id)
    elif target == DropshipStatus.PROCESSING:
        return dropship_order.mark_processing()
    elif target == DropshipStatus.SHIPPED_BY_SUPPLIER:
        tracking = tracking or {}
        tracking_number = tracking.get("tracking_number") or order_data.get("tracking_number")
        if not tracking_number:
            return dropship_order.transition_to(target, reason="Shipped by supplier")
        return dropship_order.mark_shipped(
            tracking_number,
            carrier=tracking.get("carrier") or order_data.get("carrier"),
            estimated_delivery=_parse_datetime(order_data.get("estimated_delivery")),
        )
    elif target == DropshipStatus.DELIVERED:
        return dropship_order.mark_delivered()
    elif target == DropshipStatus.CANCELLED:
        return dropship_order.cancel(reason or "Cancelled by supplier")
    elif target == DropshipStatus.REJECTED_BY_SUPPLIER:
        changed = dropship_order.reject(reason or "Rejected by supplier")
        max_attempts = get_settings().retry_max_attempts
        if changed and dropship_order.auto_retry_enabled:
            if dropship_order.can_retry(max_attempts):
                dropship_order.schedule_retry(next_retry_at(dropship_order.retry_count or 0))
            elif (dropship_order.retry_count or 0) >= max_attempts:
                dropship_order.fail_permanently(reason or "Rejected by supplier")
        return changed
    elif target == DropshipStatus.ON_HOLD:
        return dropship_order.hold(reason or "Placed on hold by supplier")
    else:
        return dropship_order.transition_to(target, reason="Reset to pending by supplier")


def _process_order_event(event_type: str, supplier_id: str, payload: dict, log) -> dict:
    order_data = _section(payload, "order", "data")
    tracking = None
    reason = order_data.get("reason") or order_data.get("cancellation_reason")

    if event_type == WebhookEvent.ORDER_STATUS_CHANGED:
        target = map_supplier_status(order_data.get("status"))
        if target is None:
            log.info("Unknown supplier status ignored", supplier_status=order_data.get("status"))
            return {"action": "ignored", "reason": "unknown_status"}
        tracking = _section(order_data, "tracking")
    elif event_type == WebhookEvent.ORDER_SHIPPED:
        target = DropshipStatus.SHIPPED_BY_SUPPLIER
        tracking = _section(payload, "tracking") or _section(order_data, "tracking")
        if not (tracking.get("tracking_number") or order_data.get("tracking_number")):
            raise ValidationError({"tracking_number": ["No tracking number provided in shipping webhook"]})
    elif event_type == WebhookEvent.ORDER_DELIVERED:
        target = DropshipStatus.DELIVERED
    elif event_type == WebhookEvent.ORDER_REJECTED:
        target = DropshipStatus.REJECTED_BY_SUPPLIER
    else:
        target = DropshipStatus.CANCELLED

    dropship_order = find_dropship_order(supplier_id, order_data)
    if dropship_order is None:
        log.warning(
            "Dropship order not found for webhook",
            external_order_id=order_data.get("external_order_id") or order_data.get("order_id"),
            supplier_order_id=order_data.get("supplier_order_id") or order_data.get("id"),
        )
        return {"action": "ignored", "reason": "unknown_order"}

    previous_status = dropship_order.status
    changed = apply_supplier_status(dropship_order, target, order_data, tracking=tracking, reason=reason)
    if not changed:
        return {"action": "unchanged", "dropship_order_id": str(dropship_order.id), "status": dropship_order.status}

    dropship_order.record_webhook(payload)
    current_domain.repository_for(DropshipOrder).add(dropship_order)
    log.info(
        "Dropship order status updated via webhook",
        dropship_order_id=str(dropship_order.id),
        old_status=previous_status,
        new_status=dropship_order.status,
    )
    return {"action": "status_updated", "dropship_order_id": str(dropship_order.id), "status": dropship_order.status}


# ---------------------------------------------------------------------------
# Product events
# ---------------------------------------------------------------------------
def _find_product_for(supplier_id: str, data: dict, event: str) -> SupplierProduct | None:
    sku = data.get("sku") or data.get("supplier_sku")
    if not sku:
        raise ValidationError({"sku": [f"No SKU provided in {event} webhook"]})
    return find_supplier_product(supplier_id, str(sku))


def _process_product_event(event_type: str, supplier_id: str, payload: dict, log) -> dict:
    if event_type == WebhookEvent.PRODUCT_STOCK_CHANGED:
        data = _section(payload, "stock", "inventory", "product", "data")
        quantity = data.get("quantity", data.get("stock_quantity"))
        if quantity is None:
            raise ValidationError({"quantity": ["Incomplete stock data in webhook"]})
        supplier_product = _find_product_for(supplier_id, data, "stock")
    else:
        data = _section(payload, "product", "data")
        supplier_product = _find_product_for(supplier_id, data, "product")

    if supplier_product is None:
        log.warning("Supplier product not found for webhook", sku=data.get("sku") or data.get("supplier_sku"))
        return {"action": "ignored", "reason": "unknown_product"}

    changes = []
    if event_type == WebhookEvent.PRODUCT_DISCONTINUED:
        if supplier_product.is_active:
            supplier_product.discontinue()
            changes.append("discontinued")
    elif event_type == WebhookEvent.PRODUCT_STOCK_CHANGED:
        if supplier_product.update_stock(int(quantity)):
            changes.append("stock")
    else:
        if data.get("name") and supplier_product.rename(data["name"]):
            changes.append("name")
        if data.get("description") is not None and data["description"] != supplier_product.description:
            supplier_product.description = data["description"]
            changes.append("description")
        if data.get("price") is not None and supplier_product.update_price(to_minor_units(data["price"])):
            changes.append("price")
        stock = data.get("stock_quantity")
        if stock is not None and supplier_product.update_stock(int(stock)):
            changes.append("stock")

    if changes:
        current_domain.repository_for(SupplierProduct).add(supplier_product)
        log.info(
            "Supplier product updated via webhook",
            supplier_product_id=str(supplier_product.id),
            sku=supplier_product.supplier_sku,
            changes=changes,
        )
    return {
        "action": "product_updated" if changes else "unchanged",
        "supplier_product_id": str(supplier_product.id),
        "changes": changes,
    }


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------
@dropship.command(part_of="SupplierIntegration")
class ProcessSupplierWebhook:
    supplier_id = Identifier(required=True)
    integration_id = Identifier(required=True)
    event_type = String(required=True, max_length=100)
    event_body = Text(required=True)  # JSON


@dropship.command_handler(part_of=SupplierIntegration)
class SupplierWebhookHandler:
    @handle(ProcessSupplierWebhook)
    def process_webhook(self, command: ProcessSupplierWebhook) -> dict:
        payload = json.loads(command.event_body)
        event_type = command.event_type
        log = logger.bind(
            queue=DropshipQueue.WEBHOOKS.value,
            event_type=event_type,
            supplier_id=str(command.supplier_id),
        )

        if event_type.startswith("order."):
            result = _process_order_event(event_type, str(command.supplier_id), payload, log)
        elif event_type in (
            WebhookEvent.PRODUCT_UPDATED,
            WebhookEvent.PRODUCT_STOCK_CHANGED,
            WebhookEvent.PRODUCT_DISCONTINUED,
        ):
            result = _process_product_event(event_type, str(command.supplier_id), payload, log)
        else:
            log.warning("Unknown webhook event type")
            result = {"action": "ignored", "reason": "unknown_event_type"}

        repo = current_domain.repository_for(SupplierIntegration)
        integration = repo.get(command.integration_id)
        integration.record_success(
            {
                "webhook_processed": True,
                "event_type": event_type,
                "processed_at": datetime.now(UTC).isoformat(),
            }
        )
        repo.add(integration)
        return {"event_type": event_type, **result}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def ingest_webhook(payload: dict) -> dict:
    """Authenticate and apply one inbound supplier event.

    Raises ``SupplierNotIdentified`` or ``InvalidWebhookSignature`` before any
    state is touched. Any later failure is counted against the integration
    and re-raised.
    """
    event_type = event_type_of(payload)
    log = logger.bind(
        queue=DropshipQueue.WEBHOOKS.value,
        event_type=event_type,
        webhook_id=payload.get("webhook_id") or payload.get("id"),
    )

    try:
        supplier, integration = identify_supplier(payload)
    except SupplierNotIdentified as exc:
        log.warning("Webhook rejected", reason=str(exc))
        raise
    log = log.bind(supplier_id=str(supplier.id), integration_id=str(integration.id))

    try:
        verify_webhook_signature(payload, integration)
    except InvalidWebhookSignature as exc:
        log.warning("Webhook rejected", reason=str(exc))
        raise

    command = ProcessSupplierWebhook(
        supplier_id=str(supplier.id),
        integration_id=str(integration.id),
        event_type=event_type,
        event_body=json.dumps(payload, default=str),
    )
    try:
        result = current_domain.process(command, asynchronous=False)
    except Exception as exc:
        log.error("Webhook processing failed", error=str(exc))
        record_integration_failure(str(integration.id), f"Webhook processing failed: {exc}")
        raise

    log.info("Webhook processed", action=result.get("action"))
    return result
