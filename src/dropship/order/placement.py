"""Parent order commands — placement, payment, cancellation and refund.

These are the storefront and payment facts the engine consumes. Recording
a payment raises ``OrderPaid``, which starts decomposition.
"""

import json

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from dropship.domain import dropship
from dropship.order.order import Order


@dropship.command(part_of="Order")
class PlaceOrder:
    customer_name = String(max_length=200)
    customer_email = String(max_length=254)
    shipping_address = Text()  # JSON object
    items = Text(required=True)  # JSON list of {product_id, sku, product_name, quantity, unit_price}
    currency = String(max_length=3, default="GBP")


@dropship.command(part_of="Order")
class RecordOrderPayment:
    order_id = Identifier(required=True)


@dropship.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@dropship.command(part_of="Order")
class RefundOrder:
    order_id = Identifier(required=True)


@dropship.command_handler(part_of=Order)
class OrderCommandHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        address = json.loads(command.shipping_address) if command.shipping_address else None
        order = Order.place(
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            shipping_address=address,
            items_data=items_data,
            currency=command.currency,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(RecordOrderPayment)
    def record_payment(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment()
        repo.add(order)

    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.cancel(command.reason)
        repo.add(order)

    @handle(RefundOrder)
    def refund_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.refund()
        repo.add(order)
