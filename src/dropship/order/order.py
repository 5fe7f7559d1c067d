"""Order aggregate — the customer order that dropship orders are derived from.

``status`` and ``fulfillment_status`` are derived: once an order has been
decomposed, only the status aggregator changes them, by recomputing over the
order's dropship orders. Cancellation and refund come from outside the
engine (customer service, payments) and are recorded as facts.

Status values:
    pending → processing → {shipped, out_for_delivery, delivered, on_hold, failed}
    any → cancelled, refunded
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text

from dropship.domain import dropship
from dropship.order.events import (
    OrderFulfillmentStatusChanged,
    OrderPaid,
    OrderPlaced,
    OrderStatusChanged,
    OrderTrackingAdded,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class FulfillmentStatus(Enum):
    UNFULFILLED = "unfulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    PARTIALLY_DELIVERED = "partially_delivered"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


_CLOSED_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dropship.entity(part_of="Order")
class OrderItem:
    """A customer order line."""

    product_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)  # minor units


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@dropship.aggregate
class Order:
    customer_name = String(max_length=200)
    customer_email = String(max_length=254)
    shipping_address = Text()  # JSON object
    currency = String(max_length=3, default="GBP")
    total_amount = Integer(default=0, min_value=0)
    status = String(max_length=30, choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.UNPAID.value)
    fulfillment_status = String(
        max_length=30,
        choices=FulfillmentStatus,
        default=FulfillmentStatus.UNFULFILLED.value,
    )
    items = HasMany(OrderItem)
    tracking_info = Text()  # JSON list of {dropship_order_id, tracking_number, carrier, added_at}
    notes = Text()
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def place(
        cls,
        customer_name: str,
        customer_email: str,
        shipping_address: dict | None,
        items_data: list[dict],
        currency: str = "GBP",
    ):
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        total = sum(item["unit_price"] * item["quantity"] for item in items_data)
        order = cls(
            customer_name=customer_name,
            customer_email=customer_email,
            shipping_address=json.dumps(shipping_address) if shipping_address else None,
            currency=currency,
            total_amount=total,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                customer_email=customer_email,
                total_amount=total,
                currency=currency,
                items=json.dumps(items_data),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value

    @property
    def is_closed(self) -> bool:
        """Cancelled or refunded."""
        return OrderStatus(self.status) in _CLOSED_STATUSES

    @property
    def address(self) -> dict | None:
        return json.loads(self.shipping_address) if self.shipping_address else None

    @property
    def tracking(self) -> list[dict]:
        return json.loads(self.tracking_info) if self.tracking_info else []

    # -------------------------------------------------------------------
    # Payment & external lifecycle
    # -------------------------------------------------------------------
    def record_payment(self) -> None:
        if self.is_paid:
            return
        if self.is_closed:
            raise ValidationError({"status": [f"Cannot pay an order that is {self.status}"]})

        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.paid_at = now
        self.updated_at = now
        self.raise_(OrderPaid(order_id=str(self.id), total_amount=self.total_amount, paid_at=now))

    def cancel(self, reason: str) -> None:
        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            return
        self._change_status(OrderStatus.CANCELLED, reason=reason)

    def refund(self) -> None:
        if not self.is_paid:
            raise ValidationError({"payment_status": ["Only paid orders can be refunded"]})
        self.payment_status = PaymentStatus.REFUNDED.value
        self._change_status(OrderStatus.REFUNDED, reason="Refunded")

    # -------------------------------------------------------------------
    # Dropship-driven changes
    # -------------------------------------------------------------------
    def start_processing(self) -> None:
        """Mark the order as handed over to suppliers."""
        if OrderStatus(self.status) != OrderStatus.PROCESSING:
            self._change_status(OrderStatus.PROCESSING, reason="Dropship orders created")

    def apply_rollup(self, status: str | None, fulfillment_status: str) -> bool:
        """Apply statuses recomputed from the order's dropship orders.

        ``status`` is None when no aggregation rule matched; the current
        status is then left as it is. Returns True if anything changed.
        """
        changed = False
        if status is not None and status != self.status:
            self._change_status(OrderStatus(status), reason="Dropship order status rollup")
            changed = True

        if fulfillment_status != self.fulfillment_status:
            now = datetime.now(UTC)
            previous = self.fulfillment_status
            self.fulfillment_status = FulfillmentStatus(fulfillment_status).value
            self.updated_at = now
            self.raise_(
                OrderFulfillmentStatusChanged(
                    order_id=str(self.id),
                    previous_fulfillment_status=previous,
                    new_fulfillment_status=self.fulfillment_status,
                    changed_at=now,
                )
            )
            changed = True
        return changed

    def add_tracking(self, dropship_order_id: str, tracking_number: str, carrier: str | None = None) -> None:
        entries = self.tracking
        if any(
            e["dropship_order_id"] == dropship_order_id and e["tracking_number"] == tracking_number for e in entries
        ):
            return

        now = datetime.now(UTC)
        entries.append(
            {
                "dropship_order_id": dropship_order_id,
                "tracking_number": tracking_number,
                "carrier": carrier,
                "added_at": now.isoformat(),
            }
        )
        self.tracking_info = json.dumps(entries)
        self.updated_at = now
        self.raise_(
            OrderTrackingAdded(
                order_id=str(self.id),
                dropship_order_id=dropship_order_id,
                tracking_number=tracking_number,
                carrier=carrier,
                added_at=now,
            )
        )

    def _change_status(self, target: OrderStatus, reason: str | None = None) -> None:
        now = datetime.now(UTC)
        previous = self.status
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target.value,
                reason=reason,
                changed_at=now,
            )
        )
