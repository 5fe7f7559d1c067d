"""Order status aggregator — rolls dropship order statuses up into the parent order.

Runs on every ``DropshipOrderStatusChanged``. The order status is the first
matching rule, in this precedence:

    1. all delivered                                   → delivered
    2. all cancelled                                   → cancelled
    3. only delivered and cancelled, at least one each → delivered
    4. any shipped_by_supplier or delivered            → shipped
    5. any out_for_delivery                            → out_for_delivery
    6. any confirmed_by_supplier or processing         → processing
    7. all rejected_by_supplier or cancelled           → failed
    8. the triggering dropship order is on_hold        → on_hold
    9. otherwise no change

The fulfillment status is derived independently from delivered, shipped and
fulfilled counts, full matches before partial ones.
"""

from collections import Counter

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.events import DropshipOrderStatusChanged
from dropship.order.order import FulfillmentStatus, Order, OrderStatus

logger = structlog.get_logger(__name__)

# Not a DropshipStatus today; kept so carriers' last-mile state rolls up if
# suppliers start reporting it.
OUT_FOR_DELIVERY = "out_for_delivery"

_SHIPPED = {DropshipStatus.SHIPPED_BY_SUPPLIER.value, DropshipStatus.DELIVERED.value}
_IN_PROGRESS = {DropshipStatus.CONFIRMED_BY_SUPPLIER.value, DropshipStatus.PROCESSING.value}
_FAILED = {DropshipStatus.REJECTED_BY_SUPPLIER.value, DropshipStatus.CANCELLED.value}
_FULFILLED = {
    DropshipStatus.CONFIRMED_BY_SUPPLIER.value,
    DropshipStatus.PROCESSING.value,
    DropshipStatus.SHIPPED_BY_SUPPLIER.value,
}


def compute_order_status(statuses: list[str], trigger_status: str | None = None) -> str | None:
    """Derive the parent order status, or None when no rule applies."""
    total = len(statuses)
    if total == 0:
        return None

    counts = Counter(statuses)
    delivered = counts[DropshipStatus.DELIVERED.value]
    cancelled = counts[DropshipStatus.CANCELLED.value]

    if delivered == total:
        return OrderStatus.DELIVERED.value
    if cancelled == total:
        return OrderStatus.CANCELLED.value
    if delivered > 0 and cancelled > 0 and delivered + cancelled == total:
        return OrderStatus.DELIVERED.value
    if any(s in _SHIPPED for s in statuses):
        return OrderStatus.SHIPPED.value
    if OUT_FOR_DELIVERY in counts:
        return OrderStatus.OUT_FOR_DELIVERY.value
    if any(s in _IN_PROGRESS for s in statuses):
        return OrderStatus.PROCESSING.value
    if all(s in _FAILED for s in statuses):
        return OrderStatus.FAILED.value
    if trigger_status == DropshipStatus.ON_HOLD.value:
        return OrderStatus.ON_HOLD.value
    return None


def compute_fulfillment_status(statuses: list[str]) -> str:
    total = len(statuses)
    if total == 0:
        return FulfillmentStatus.UNFULFILLED.value

    counts = Counter(statuses)
    delivered = counts[DropshipStatus.DELIVERED.value]
    shipped = counts[DropshipStatus.SHIPPED_BY_SUPPLIER.value] + delivered
    fulfilled = sum(counts[s] for s in _FULFILLED)
    cancelled = counts[DropshipStatus.CANCELLED.value]

    if delivered == total:
        return FulfillmentStatus.DELIVERED.value
    if delivered > 0:
        return FulfillmentStatus.PARTIALLY_DELIVERED.value
    if shipped == total:
        return FulfillmentStatus.SHIPPED.value
    if shipped > 0:
        return FulfillmentStatus.PARTIALLY_SHIPPED.value
    if fulfilled == total:
        return FulfillmentStatus.FULFILLED.value
    if fulfilled > 0:
        return FulfillmentStatus.PARTIALLY_FULFILLED.value
    if cancelled == total:
        return FulfillmentStatus.CANCELLED.value
    return FulfillmentStatus.UNFULFILLED.value


def dropship_orders_for(order_id: str) -> list[DropshipOrder]:
    repo = current_domain.repository_for(DropshipOrder)
    return repo._dao.query.filter(order_id=str(order_id)).all().items


def recompute_order(order: Order, trigger_status: str | None = None) -> bool:
    """Apply the rolled-up statuses to ``order``. Returns True if it changed."""
    statuses = [do.status for do in dropship_orders_for(str(order.id))]

    new_status = compute_order_status(statuses, trigger_status)
    new_fulfillment = compute_fulfillment_status(statuses)

    # Cancelled and refunded orders keep their status; fulfillment still follows suppliers.
    if order.is_closed:
        new_status = None

    changed = order.apply_rollup(new_status, new_fulfillment)
    if changed:
        logger.info(
            "Order status recomputed from dropship orders",
            order_id=str(order.id),
            status=order.status,
            fulfillment_status=order.fulfillment_status,
            dropship_statuses=statuses,
        )
    return changed


@dropship.event_handler(part_of=Order, stream_category="dropship::dropship_order")
class OrderStatusAggregator:
    """Keeps the parent order in step with its dropship orders."""

    @handle(DropshipOrderStatusChanged)
    def on_dropship_status_changed(self, event: DropshipOrderStatusChanged) -> None:
        repo = current_domain.repository_for(Order)
        order = repo.get(event.order_id)

        if event.new_status == DropshipStatus.SHIPPED_BY_SUPPLIER.value and event.tracking_number:
            order.add_tracking(
                dropship_order_id=str(event.dropship_order_id),
                tracking_number=event.tracking_number,
                carrier=event.carrier,
            )

        recompute_order(order, trigger_status=event.new_status)
        repo.add(order)
