"""Parent order status and fulfillment status derived from dropship order statuses."""

import pytest

from dropship.dropship_order.aggregation import compute_fulfillment_status, compute_order_status


class TestOrderStatusRules:
    @pytest.mark.parametrize(
        "statuses,expected",
        [
            (["delivered", "delivered"], "delivered"),
            (["cancelled", "cancelled"], "cancelled"),
            (["delivered", "delivered", "cancelled"], "delivered"),
            (["shipped_by_supplier", "pending"], "shipped"),
            (["delivered", "processing"], "shipped"),
            (["out_for_delivery", "pending"], "out_for_delivery"),
            (["confirmed_by_supplier", "sent_to_supplier"], "processing"),
            (["processing", "rejected_by_supplier"], "processing"),
            (["rejected_by_supplier", "cancelled"], "failed"),
            (["rejected_by_supplier"], "failed"),
        ],
    )
    def test_first_matching_rule_wins(self, statuses, expected):
        assert compute_order_status(statuses) == expected

    def test_no_rule_matches(self):
        assert compute_order_status(["pending", "pending"]) is None
        assert compute_order_status(["sent_to_supplier"]) is None

    def test_no_dropship_orders(self):
        assert compute_order_status([]) is None

    def test_on_hold_only_when_triggered_by_hold(self):
        assert compute_order_status(["on_hold", "pending"], trigger_status="on_hold") == "on_hold"
        assert compute_order_status(["on_hold", "pending"], trigger_status="pending") is None

    def test_shipment_outranks_hold(self):
        assert compute_order_status(["on_hold", "shipped_by_supplier"], trigger_status="on_hold") == "shipped"


class TestFulfillmentStatus:
    @pytest.mark.parametrize(
        "statuses,expected",
        [
            (["delivered", "delivered"], "delivered"),
            (["delivered", "shipped_by_supplier"], "partially_delivered"),
            (["shipped_by_supplier", "shipped_by_supplier"], "shipped"),
            (["shipped_by_supplier", "pending"], "partially_shipped"),
            (["confirmed_by_supplier", "processing"], "fulfilled"),
            (["confirmed_by_supplier", "pending"], "partially_fulfilled"),
            (["cancelled", "cancelled"], "cancelled"),
            (["pending", "sent_to_supplier"], "unfulfilled"),
            ([], "unfulfilled"),
        ],
    )
    def test_fulfillment_rules(self, statuses, expected):
        assert compute_fulfillment_status(statuses) == expected
