"""Domain tests for ProductSupplierMapping pricing rules and held changes."""

import pytest
from protean.exceptions import ValidationError

from dropship.supplier.events import PriceChangeApproved, PriceChangeHeld, PriceChangeRejected
from dropship.supplier.mapping import MarkupType, ProductSupplierMapping


def _make_mapping(**rule):
    mapping = ProductSupplierMapping.link(
        product_id="prod-1",
        supplier_id="sup-1",
        supplier_product_id="sp-1",
        **rule,
    )
    mapping._events.clear()
    return mapping


class TestRetailPrice:
    def test_percentage_markup(self):
        mapping = _make_mapping(markup_type=MarkupType.PERCENTAGE.value, markup_percentage=25.0)
        assert mapping.calculate_retail_price(1000) == 1250

    def test_percentage_markup_rounds_to_minor_unit(self):
        mapping = _make_mapping(markup_type=MarkupType.PERCENTAGE.value, markup_percentage=33.0)
        assert mapping.calculate_retail_price(999) == 1329

    def test_fixed_markup(self):
        mapping = _make_mapping(markup_type=MarkupType.FIXED.value, fixed_markup=450)
        assert mapping.calculate_retail_price(1000) == 1450


class TestStockAndFlags:
    def test_available_stock_keeps_safety_threshold(self):
        mapping = _make_mapping(minimum_stock_threshold=5)
        assert mapping.available_stock(12) == 7
        assert mapping.available_stock(3) == 0

    def test_inactive_mapping_never_updates(self):
        mapping = _make_mapping()
        mapping.deactivate()
        assert mapping.can_update_price() is False
        assert mapping.can_update_stock() is False

    def test_auto_update_flags(self):
        mapping = _make_mapping(auto_update_price=False, auto_update_stock=True)
        assert mapping.can_update_price() is False
        assert mapping.can_update_stock() is True


class TestHeldPriceChange:
    def test_hold_disables_auto_pricing(self):
        mapping = _make_mapping()
        mapping.hold_price_change(1000, 1300, 30.0, reason="Price change of 30.0% exceeds 25% threshold")

        assert mapping.auto_update_price is False
        assert mapping.pending_change["new_price"] == 1300
        assert mapping.pending_change["change_percentage"] == 30.0
        assert isinstance(mapping._events[-1], PriceChangeHeld)

    def test_approve_returns_new_price_and_reenables(self):
        mapping = _make_mapping()
        mapping.hold_price_change(1000, 1300, 30.0, reason="too big")

        assert mapping.approve_pending_change() == 1300
        assert mapping.pending_change is None
        assert mapping.auto_update_price is True
        assert isinstance(mapping._events[-1], PriceChangeApproved)

    def test_reject_keeps_auto_pricing_off(self):
        mapping = _make_mapping()
        mapping.hold_price_change(1000, 1300, 30.0, reason="too big")
        mapping.reject_pending_change()

        assert mapping.pending_change is None
        assert mapping.auto_update_price is False
        assert isinstance(mapping._events[-1], PriceChangeRejected)

    def test_nothing_to_approve(self):
        mapping = _make_mapping()
        with pytest.raises(ValidationError):
            mapping.approve_pending_change()
        with pytest.raises(ValidationError):
            mapping.reject_pending_change()
