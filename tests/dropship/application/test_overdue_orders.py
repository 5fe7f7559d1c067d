"""Application tests for overdue dropship order processing."""

from datetime import UTC, datetime, timedelta

import pytest
from protean import current_domain

from dropship.dropship_order.aggregation import dropship_orders_for
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.overdue import ProcessOverdueDropshipOrders, days_past_due, overdue_orders

ADMIN_EMAIL = "ops@shop.test"


def _backdate(dropship_order_id, days):
    repo = current_domain.repository_for(DropshipOrder)
    dropship_order = repo.get(dropship_order_id)
    dropship_order.sent_to_supplier_at = datetime.now(UTC) - timedelta(days=days)
    repo.add(dropship_order)
    return repo.get(dropship_order_id)


def _run(**kwargs):
    return current_domain.process(ProcessOverdueDropshipOrders(days=7, **kwargs), asynchronous=False)


def _reload(dropship_order_id) -> DropshipOrder:
    return current_domain.repository_for(DropshipOrder).get(dropship_order_id)


@pytest.fixture
def late_order(register_supplier, stock_product, place_order):
    """A dropship order sent to its supplier eighteen days ago."""
    supplier_id, _ = register_supplier()
    order_id = place_order([(stock_product(supplier_id), 1)])
    (dropship_order,) = dropship_orders_for(order_id)
    _backdate(str(dropship_order.id), 18)
    return {"supplier_id": supplier_id, "dropship_order_id": str(dropship_order.id)}


class TestSelection:
    def test_recent_orders_are_not_overdue(self, late_order, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier(name="Globex", email_address="orders@globex.test")
        recent_order_id = place_order([(stock_product(supplier_id), 1)])

        overdue = overdue_orders(7)

        assert [str(do.id) for do in overdue] == [late_order["dropship_order_id"]]
        assert all(str(do.order_id) != recent_order_id for do in overdue)

    def test_supplier_filter(self, late_order, register_supplier):
        other_id, _ = register_supplier(name="Globex")

        assert overdue_orders(7, supplier_id=other_id) == []
        assert len(overdue_orders(7, supplier_id=late_order["supplier_id"])) == 1

    def test_days_past_due_without_estimate(self, late_order):
        # Sent eighteen days ago with seven days allowed for processing
        assert days_past_due(_reload(late_order["dropship_order_id"])) == 11

    def test_days_past_due_uses_estimate(self, late_order):
        dropship_order = _reload(late_order["dropship_order_id"])
        dropship_order.estimated_delivery = datetime.now(UTC) - timedelta(days=4, hours=1)

        assert days_past_due(dropship_order) == 4


class TestActions:
    def test_notify_mails_supplier_and_admins(self, late_order, email_adapter):
        stats = _run(action="notify")

        assert stats["total_orders"] == 1
        assert stats["processed_successfully"] == 1
        assert stats["notifications_sent"] == 1

        (supplier_mail,) = email_adapter.messages_to("sales@acme.test")
        assert "overdue" in supplier_mail["subject"]
        assert "11 days past" in supplier_mail["body"]
        assert any("Overdue" in m["subject"] for m in email_adapter.messages_to(ADMIN_EMAIL))

    def test_cancel(self, late_order):
        stats = _run(action="cancel")

        assert stats["orders_cancelled"] == 1
        dropship_order = _reload(late_order["dropship_order_id"])
        assert dropship_order.status == DropshipStatus.CANCELLED.value
        assert "overdue by 11 days" in dropship_order.notes

    def test_escalate(self, late_order, email_adapter):
        stats = _run(action="escalate")

        assert stats["orders_escalated"] == 1
        assert "Escalated" in _reload(late_order["dropship_order_id"]).notes
        assert any(m["subject"].startswith("ESCALATION") for m in email_adapter.messages_to(ADMIN_EMAIL))

    def test_retry_of_held_order(self, late_order):
        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = repo.get(late_order["dropship_order_id"])
        dropship_order.hold("Waiting on supplier")
        repo.add(dropship_order)

        stats = _run(action="retry")

        assert stats["orders_retried"] == 1
        dropship_order = _reload(late_order["dropship_order_id"])
        assert dropship_order.status == DropshipStatus.SENT_TO_SUPPLIER.value
        assert dropship_order.retry_count == 1

    def test_retry_that_cannot_run_is_reported(self, late_order):
        stats = _run(action="retry")

        assert stats["failed_processing"] == 1
        assert stats["processed_successfully"] == 0
        assert stats["errors"][0].startswith(f"Order {late_order['dropship_order_id']}:")
        assert _reload(late_order["dropship_order_id"]).retry_count == 0

    def test_dry_run_changes_nothing(self, late_order, email_adapter):
        sent_before = len(email_adapter.sent_emails)

        stats = _run(action="cancel", dry_run=True)

        assert stats["dry_run"] is True
        assert stats["processed_successfully"] == 1
        assert stats["orders_cancelled"] == 0
        assert _reload(late_order["dropship_order_id"]).status == DropshipStatus.SENT_TO_SUPPLIER.value
        assert len(email_adapter.sent_emails) == sent_before
