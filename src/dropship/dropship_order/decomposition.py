"""Order decomposition — splits a paid order into one dropship order per supplier.

An order line is dropship-eligible when its product is a dropship product
with an active mapping to an active supplier whose SKU has enough stock.
Mappings are tried primary first. Lines that are not eligible stay on the
parent order for regular fulfillment.

Decomposition happens at most once per order: if dropship orders already
exist for it, the existing ones are returned.
"""

from collections import defaultdict

import structlog
from protean.exceptions import ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.aggregation import dropship_orders_for
from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.order.events import OrderPaid
from dropship.order.order import Order, OrderItem
from dropship.supplier.lookups import (
    active_mappings_for_product,
    find_product,
    find_supplier,
    find_supplier_product_by_id,
)

logger = structlog.get_logger(__name__)


def eligible_line(item: OrderItem) -> dict | None:
    """The dropship line for ``item``, or None if no supplier can fulfil it."""
    product = find_product(item.product_id)
    if product is None or not product.is_dropship or not product.is_active:
        return None

    for mapping in active_mappings_for_product(str(product.id)):
        supplier = find_supplier(mapping.supplier_id)
        if supplier is None or not supplier.is_active:
            continue
        supplier_product = find_supplier_product_by_id(mapping.supplier_product_id)
        if supplier_product is None or not supplier_product.has_stock_for(item.quantity):
            continue

        return {
            "supplier_id": str(supplier.id),
            "order_item_id": str(item.id),
            "product_id": str(product.id),
            "supplier_product_id": str(supplier_product.id),
            "supplier_sku": supplier_product.supplier_sku,
            "product_name": item.product_name or supplier_product.name,
            "quantity": item.quantity,
            "unit_supplier_cost": supplier_product.price,
            "unit_retail_price": item.unit_price,
        }
    return None


def group_by_supplier(order: Order) -> dict[str, list[dict]]:
    groups: dict[str, list[dict]] = defaultdict(list)
    for item in order.items:
        line = eligible_line(item)
        if line is None:
            logger.info(
                "Order line is not dropship-eligible",
                order_id=str(order.id),
                order_item_id=str(item.id),
                product_id=str(item.product_id),
            )
            continue
        groups[line.pop("supplier_id")].append(line)
    return dict(groups)


def decompose_order(order: Order) -> list[str]:
    """Create and persist the order's dropship orders. Returns their ids."""
    if not order.is_paid:
        raise ValidationError({"payment_status": ["Only paid orders can be split into dropship orders"]})
    if order.is_closed:
        raise ValidationError({"status": [f"Order is {order.status} and cannot be split into dropship orders"]})

    existing = dropship_orders_for(str(order.id))
    if existing:
        logger.info("Order already decomposed", order_id=str(order.id), dropship_orders=len(existing))
        return [str(do.id) for do in existing]

    created = []
    for supplier_id, lines in group_by_supplier(order).items():
        total_cost = sum(line["unit_supplier_cost"] * line["quantity"] for line in lines)
        total_retail = sum(line["unit_retail_price"] * line["quantity"] for line in lines)
        if total_retail < total_cost:
            logger.warning(
                "Supplier share skipped: supplier cost exceeds retail value",
                order_id=str(order.id),
                supplier_id=supplier_id,
                total_cost=total_cost,
                total_retail=total_retail,
            )
            continue

        dropship_order = DropshipOrder.create(
            order_id=str(order.id),
            supplier_id=supplier_id,
            items_data=lines,
            shipping_address=order.address,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            currency=order.currency,
        )
        created.append(dropship_order)

    # The parent is saved first; submitting the new orders rolls statuses up into it.
    if created:
        order.start_processing()
        current_domain.repository_for(Order).add(order)

    repo = current_domain.repository_for(DropshipOrder)
    for dropship_order in created:
        repo.add(dropship_order)

    logger.info("Order decomposed", order_id=str(order.id), dropship_orders=len(created))
    return [str(do.id) for do in created]


@dropship.command(part_of="DropshipOrder")
class DecomposeOrder:
    order_id = Identifier(required=True)


@dropship.command_handler(part_of=DropshipOrder)
class DecomposeOrderHandler:
    @handle(DecomposeOrder)
    def decompose(self, command: DecomposeOrder) -> list[str]:
        order = current_domain.repository_for(Order).get(command.order_id)
        return decompose_order(order)


@dropship.event_handler(part_of=DropshipOrder, stream_category="dropship::order")
class PaidOrderDecomposer:
    """Splits an order into dropship orders as soon as it is paid."""

    @handle(OrderPaid)
    def on_order_paid(self, event: OrderPaid) -> None:
        order = current_domain.repository_for(Order).get(event.order_id)
        if order.is_closed:
            logger.info("Paid order is closed, not decomposing", order_id=str(order.id), status=order.status)
            return
        decompose_order(order)
