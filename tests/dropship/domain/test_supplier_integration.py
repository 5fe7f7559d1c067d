"""Domain tests for SupplierIntegration outcome bookkeeping and health."""

import json

import pytest

from dropship.supplier.integration import IntegrationType, SupplierIntegration


def _make_integration(integration_type=IntegrationType.API.value, **settings):
    integration = SupplierIntegration.configure(
        supplier_id="sup-1",
        integration_type=integration_type,
        **settings,
    )
    integration._events.clear()
    return integration


class TestOutcomeRecording:
    def test_failure_increments_counter(self):
        integration = _make_integration()
        integration.record_failure("API request failed: 500")
        integration.record_failure("API request failed: 502")

        assert integration.consecutive_failures == 2
        assert integration.last_error == "API request failed: 502"
        assert integration.last_failed_sync_at is not None

    def test_success_resets_counter_and_merges_statistics(self):
        integration = _make_integration()
        integration.record_success({"products_processed": 10})
        integration.record_failure("boom")
        integration.record_success({"order_sent": True})

        assert integration.consecutive_failures == 0
        assert integration.last_error is None
        assert json.loads(integration.sync_statistics) == {"products_processed": 10, "order_sent": True}


class TestHealth:
    @pytest.mark.parametrize(
        "failures,active,score",
        [
            (0, True, 100),
            (2, True, 60),
            (5, True, 0),
            (7, True, 0),
            (0, False, 0),
            (1, False, 0),
        ],
    )
    def test_health_score(self, failures, active, score):
        integration = _make_integration()
        integration.consecutive_failures = failures
        integration.is_active = active
        assert integration.health_score() == score

    def test_unhealthy_after_threshold(self):
        integration = _make_integration()
        integration.consecutive_failures = 2
        assert integration.is_healthy(3) is True
        integration.consecutive_failures = 3
        assert integration.is_healthy(3) is False

    def test_disabled_integration_is_unhealthy(self):
        integration = _make_integration()
        integration.disable()
        assert integration.is_healthy(3) is False

    def test_enable_clears_failures(self):
        integration = _make_integration()
        integration.record_failure("boom")
        integration.disable()
        integration.enable()
        assert integration.is_active is True
        assert integration.consecutive_failures == 0


class TestOptions:
    def test_options_from_dict(self):
        integration = _make_integration(options={"upload_directory": "/in", "passive_mode": False})
        assert integration.option("upload_directory") == "/in"
        assert integration.option("passive_mode", True) is False
        assert integration.option("page_size", 50) == 50

    def test_no_options(self):
        assert _make_integration().option("timeout", 30) == 30

    @pytest.mark.parametrize(
        "integration_type,automated",
        [("api", True), ("webhook", True), ("ftp", True), ("csv_upload", True), ("email", False), ("manual", False)],
    )
    def test_automated_types(self, integration_type, automated):
        assert _make_integration(integration_type).is_automated() is automated
