"""Supplier price swing classification."""

import pytest

from dropship.catalog_sync.pricing import PriceDecision, classify_price_change, price_change_percentage


class TestPriceChangePercentage:
    def test_relative_to_old_price(self):
        assert price_change_percentage(1000, 1300) == 30.0
        assert price_change_percentage(1000, 800) == 20.0

    def test_no_previous_price(self):
        assert price_change_percentage(0, 1000) is None


class TestClassifyPriceChange:
    @pytest.mark.parametrize(
        "old,new,decision",
        [
            (1000, 1080, PriceDecision.APPLIED),
            (1000, 920, PriceDecision.APPLIED),
            (1000, 1100, PriceDecision.SIGNIFICANT),
            (1000, 850, PriceDecision.SIGNIFICANT),
            (1000, 1250, PriceDecision.HELD),
            (1000, 1300, PriceDecision.HELD),
            (1000, 500, PriceDecision.HELD),
            (0, 1000, PriceDecision.APPLIED),
        ],
    )
    def test_thresholds(self, old, new, decision):
        assert classify_price_change(old, new) == decision

    def test_thresholds_follow_settings(self, monkeypatch):
        from dropship.settings import reset_settings

        monkeypatch.setenv("DROPSHIP_EXTREME_PRICE_CHANGE_PCT", "50")
        reset_settings()
        assert classify_price_change(1000, 1300) == PriceDecision.SIGNIFICANT
