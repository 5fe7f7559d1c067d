"""Domain tests for the parent Order."""

import pytest
from protean.exceptions import ValidationError

from dropship.order.events import OrderPaid, OrderTrackingAdded
from dropship.order.order import FulfillmentStatus, Order, OrderStatus, PaymentStatus


def _make_order():
    order = Order.place(
        customer_name="Jane Doe",
        customer_email="jane@example.com",
        shipping_address={"line1": "1 High Street"},
        items_data=[
            {"product_id": "prod-1", "sku": "RET-1", "product_name": "Widget", "quantity": 2, "unit_price": 1500},
            {"product_id": "prod-2", "sku": "RET-2", "product_name": "Gadget", "quantity": 1, "unit_price": 500},
        ],
    )
    order._events.clear()
    return order


class TestPlacement:
    def test_total_is_sum_of_lines(self):
        order = _make_order()
        assert order.total_amount == 3500
        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.UNPAID.value
        assert order.address == {"line1": "1 High Street"}

    def test_order_needs_items(self):
        with pytest.raises(ValidationError):
            Order.place("Jane", "jane@example.com", None, [])


class TestPayment:
    def test_record_payment(self):
        order = _make_order()
        order.record_payment()
        assert order.is_paid
        assert order.paid_at is not None
        assert isinstance(order._events[-1], OrderPaid)

    def test_paying_twice_raises_one_event(self):
        order = _make_order()
        order.record_payment()
        order.record_payment()
        assert len([e for e in order._events if isinstance(e, OrderPaid)]) == 1

    def test_cancelled_order_cannot_be_paid(self):
        order = _make_order()
        order.cancel("Customer changed mind")
        with pytest.raises(ValidationError):
            order.record_payment()

    def test_refund_requires_payment(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.refund()

        order.record_payment()
        order.refund()
        assert order.status == OrderStatus.REFUNDED.value
        assert order.is_closed


class TestRollup:
    def test_apply_rollup_changes_both_statuses(self):
        order = _make_order()
        assert order.apply_rollup("shipped", FulfillmentStatus.PARTIALLY_SHIPPED.value) is True
        assert order.status == OrderStatus.SHIPPED.value
        assert order.fulfillment_status == FulfillmentStatus.PARTIALLY_SHIPPED.value

    def test_none_status_leaves_status_alone(self):
        order = _make_order()
        order.start_processing()
        assert order.apply_rollup(None, FulfillmentStatus.UNFULFILLED.value) is False
        assert order.status == OrderStatus.PROCESSING.value

    def test_tracking_is_recorded_once(self):
        order = _make_order()
        order.add_tracking("do-1", "TRACK-1", "DHL")
        order.add_tracking("do-1", "TRACK-1", "DHL")
        assert order.tracking == [
            {
                "dropship_order_id": "do-1",
                "tracking_number": "TRACK-1",
                "carrier": "DHL",
                "added_at": order.tracking[0]["added_at"],
            }
        ]
        assert len([e for e in order._events if isinstance(e, OrderTrackingAdded)]) == 1
