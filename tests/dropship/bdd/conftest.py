"""Shared BDD fixtures and step definitions for the dropship domain."""

import pytest
from protean.exceptions import InvalidOperationError, ValidationError
from pytest_bdd import given, parsers, then

from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.events import (
    DropshipOrderConfigurationFailed,
    DropshipOrderCreated,
    DropshipOrderPermanentlyFailed,
    DropshipOrderRetryStarted,
    DropshipOrderStatusChanged,
    DropshipOrderSubmissionFailed,
)
from dropship.supplier.events import PriceChangeApproved, PriceChangeHeld, PriceChangeRejected

# Map event name strings to classes for dynamic lookup
_EVENT_CLASSES = {
    "DropshipOrderCreated": DropshipOrderCreated,
    "DropshipOrderStatusChanged": DropshipOrderStatusChanged,
    "DropshipOrderSubmissionFailed": DropshipOrderSubmissionFailed,
    "DropshipOrderRetryStarted": DropshipOrderRetryStarted,
    "DropshipOrderPermanentlyFailed": DropshipOrderPermanentlyFailed,
    "DropshipOrderConfigurationFailed": DropshipOrderConfigurationFailed,
    "PriceChangeHeld": PriceChangeHeld,
    "PriceChangeApproved": PriceChangeApproved,
    "PriceChangeRejected": PriceChangeRejected,
}

# Shortest legal path from pending to each status
_PATHS = {
    "pending": [],
    "sent_to_supplier": ["sent_to_supplier"],
    "confirmed_by_supplier": ["sent_to_supplier", "confirmed_by_supplier"],
    "processing": ["sent_to_supplier", "confirmed_by_supplier", "processing"],
    "delivered": ["sent_to_supplier", "confirmed_by_supplier", "delivered"],
    "rejected_by_supplier": ["sent_to_supplier", "rejected_by_supplier"],
    "on_hold": ["on_hold"],
    "cancelled": ["cancelled"],
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a dropship order for {quantity:d} units of "{sku}" costing {cost:d} each'),
    target_fixture="dropship_order",
)
def new_dropship_order(quantity, sku, cost):
    dropship_order = DropshipOrder.create(
        order_id="ord-bdd-1",
        supplier_id="sup-bdd-1",
        items_data=[
            {
                "order_item_id": "oi-1",
                "product_id": "prod-1",
                "supplier_product_id": "sp-1",
                "supplier_sku": sku,
                "product_name": "Widget",
                "quantity": quantity,
                "unit_supplier_cost": cost,
                "unit_retail_price": cost * 2,
            }
        ],
        shipping_address={"line1": "1 High Street", "city": "Leeds"},
        customer_name="Jane Doe",
    )
    dropship_order._events.clear()
    return dropship_order


@given(parsers.cfparse('the dropship order is "{status}"'))
def dropship_order_in_status(dropship_order, status):
    for step in _PATHS[status]:
        if step == "on_hold":
            dropship_order.hold("Waiting on supplier")
        else:
            dropship_order.transition_to(DropshipStatus(step))
    dropship_order._events.clear()


@given(parsers.cfparse("the dropship order has been retried {count:d} times"))
def dropship_order_retried(dropship_order, count):
    dropship_order.retry_count = count


# ---------------------------------------------------------------------------
# Then steps (shared)
# ---------------------------------------------------------------------------
@then("the action fails with a validation error")
def action_fails_with_validation_error(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then("the action fails with an invalid operation error")
def action_fails_with_invalid_operation(error):
    assert error["exc"] is not None, "Expected an invalid operation error but none was raised"
    assert isinstance(error["exc"], InvalidOperationError)


@then(parsers.cfparse('the dropship order status is "{status}"'))
def dropship_order_status_is(dropship_order, status):
    assert dropship_order.status == status


@then(parsers.cfparse("the dropship order retry count is {count:d}"))
def dropship_order_retry_count_is(dropship_order, count):
    assert dropship_order.retry_count == count


@then(parsers.cfparse("a {event_type} event is raised"))
def dropship_order_event_raised(dropship_order, event_type):
    _assert_event(dropship_order, event_type)


@then(parsers.cfparse("the mapping raises a {event_type} event"))
def mapping_event_raised(mapping, event_type):
    _assert_event(mapping, event_type)


@then("no event is raised")
def no_event_raised(dropship_order):
    assert len(dropship_order._events) == 0


def _assert_event(aggregate, event_type):
    event_cls = _EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in aggregate._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in aggregate._events]}"
