"""Application tests for splitting paid orders into dropship orders.

Recording a payment raises OrderPaid; the decomposer and the submission
dispatcher then run synchronously, so each test observes the orders as they
are after their first submission attempt.
"""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from dropship.dropship_order.aggregation import dropship_orders_for
from dropship.dropship_order.decomposition import DecomposeOrder
from dropship.dropship_order.dropship_order import DropshipStatus
from dropship.order.order import Order, OrderStatus, PaymentStatus
from dropship.order.placement import CancelOrder, RefundOrder
from dropship.supplier.registration import ChangeSupplierStatus


class TestDecomposition:
    def test_one_dropship_order_per_supplier(self, register_supplier, stock_product, place_order):
        acme_id, _ = register_supplier(name="Acme")
        globex_id, _ = register_supplier(name="Globex", email_address="orders@globex.test")
        widget = stock_product(acme_id, sku="W-1", cost=1000, retail=1500)
        bolt = stock_product(acme_id, sku="B-1", cost=200, retail=400)
        gadget = stock_product(globex_id, sku="G-1", cost=3000, retail=4500)

        order_id = place_order([(widget, 2), (bolt, 5), (gadget, 1)])

        dropship_orders = dropship_orders_for(order_id)
        assert len(dropship_orders) == 2
        by_supplier = {str(do.supplier_id): do for do in dropship_orders}

        acme_order = by_supplier[acme_id]
        assert len(acme_order.items) == 2
        assert acme_order.total_cost == 2 * 1000 + 5 * 200
        assert acme_order.total_retail == 2 * 1500 + 5 * 400
        assert acme_order.profit_margin == acme_order.total_retail - acme_order.total_cost
        assert acme_order.address["city"] == "Leeds"

        globex_order = by_supplier[globex_id]
        assert [item.supplier_sku for item in globex_order.items] == ["G-1"]

    def test_parent_order_moves_to_processing(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)])

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PROCESSING.value

    def test_unpaid_order_is_not_decomposed(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)], paid=False)

        assert dropship_orders_for(order_id) == []
        with pytest.raises(ValidationError):
            current_domain.process(DecomposeOrder(order_id=order_id), asynchronous=False)

    def test_decomposition_is_idempotent(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)])
        first = [str(do.id) for do in dropship_orders_for(order_id)]

        again = current_domain.process(DecomposeOrder(order_id=order_id), asynchronous=False)

        assert again == first
        assert len(dropship_orders_for(order_id)) == 1


class TestEligibility:
    def test_out_of_stock_line_stays_with_parent(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        in_stock = stock_product(supplier_id, sku="IN-1", stock=10)
        short = stock_product(supplier_id, sku="SHORT-1", stock=1)

        order_id = place_order([(in_stock, 2), (short, 2)])

        (dropship_order,) = dropship_orders_for(order_id)
        assert [item.supplier_sku for item in dropship_order.items] == ["IN-1"]

    def test_inactive_supplier_is_skipped(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        entry = stock_product(supplier_id)
        current_domain.process(
            ChangeSupplierStatus(supplier_id=supplier_id, status="suspended"),
            asynchronous=False,
        )

        order_id = place_order([(entry, 1)])

        assert dropship_orders_for(order_id) == []
        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PENDING.value

    def test_negative_margin_group_is_skipped(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        loss_maker = stock_product(supplier_id, cost=2000, retail=1500)

        order_id = place_order([(loss_maker, 1)])

        assert dropship_orders_for(order_id) == []


class TestAutomaticSubmission:
    def test_new_dropship_order_is_emailed_to_supplier(
        self, register_supplier, stock_product, place_order, email_adapter
    ):
        supplier_id, _ = register_supplier(email_address="desk@acme.test")
        order_id = place_order([(stock_product(supplier_id), 3)])

        (dropship_order,) = dropship_orders_for(order_id)
        assert dropship_order.status == DropshipStatus.SENT_TO_SUPPLIER.value
        assert dropship_order.sent_to_supplier_at is not None

        (message,) = email_adapter.messages_to("desk@acme.test")
        assert message["subject"] == f"New order {dropship_order.id}"
        assert len(message["attachments"]) == 1


class TestParentOrderCommands:
    def test_cancel_records_reason(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)], paid=False)

        current_domain.process(CancelOrder(order_id=order_id, reason="Customer request"), asynchronous=False)

        assert current_domain.repository_for(Order).get(order_id).status == OrderStatus.CANCELLED.value

    def test_refund_paid_order(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)])

        current_domain.process(RefundOrder(order_id=order_id), asynchronous=False)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.REFUNDED.value
        assert order.payment_status == PaymentStatus.REFUNDED.value

    def test_unpaid_order_cannot_be_refunded(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)], paid=False)

        with pytest.raises(ValidationError):
            current_domain.process(RefundOrder(order_id=order_id), asynchronous=False)
