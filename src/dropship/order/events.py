"""Parent order events.

``OrderPaid`` starts decomposition. ``OrderStatusChanged`` and
``OrderFulfillmentStatusChanged`` are published by the status aggregator for
customer notification and reporting consumers.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from dropship.domain import dropship


@dropship.event(part_of="Order")
class OrderPlaced:
    """A customer order was placed."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_email = String()
    total_amount = Integer(required=True)
    currency = String(required=True)
    items = Text(required=True)  # JSON list of line item dicts
    placed_at = DateTime(required=True)


@dropship.event(part_of="Order")
class OrderPaid:
    """Payment for the order was captured."""

    __version__ = 1

    order_id = Identifier(required=True)
    total_amount = Integer(required=True)
    paid_at = DateTime(required=True)


@dropship.event(part_of="Order")
class OrderStatusChanged:
    """The order's overall status changed."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@dropship.event(part_of="Order")
class OrderFulfillmentStatusChanged:
    """The order's fulfillment status changed after a dropship order moved."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_fulfillment_status = String(required=True)
    new_fulfillment_status = String(required=True)
    changed_at = DateTime(required=True)


@dropship.event(part_of="Order")
class OrderTrackingAdded:
    """A supplier shipment's tracking details were attached to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    dropship_order_id = Identifier(required=True)
    tracking_number = String(required=True)
    carrier = String()
    added_at = DateTime(required=True)
