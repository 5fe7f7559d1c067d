"""BDD tests for supplier integration failure tracking and health scoring."""

from pytest_bdd import given, parsers, scenarios, then, when

from dropship.supplier.integration import SupplierIntegration

scenarios("features/integration_health.feature")


def _fail(integration, times):
    start = integration.consecutive_failures or 0
    for attempt in range(start + 1, start + times + 1):
        integration.record_failure(f"Timeout on attempt {attempt}")


@given(parsers.cfparse('an "{integration_type}" integration'), target_fixture="integration")
def new_integration(integration_type):
    integration = SupplierIntegration.configure(
        supplier_id="sup-1",
        integration_type=integration_type,
        api_endpoint="https://supplier.test/api",
        api_key="key-1",
    )
    integration._events.clear()
    return integration


@given(parsers.cfparse("{times:d} exchanges have failed"))
def exchanges_have_failed(integration, times):
    _fail(integration, times)


@given("the integration has been disabled")
def integration_has_been_disabled(integration):
    integration.disable()


@when(parsers.cfparse("{times:d} exchanges fail"))
def exchanges_fail(integration, times):
    _fail(integration, times)


@when("an exchange succeeds")
def exchange_succeeds(integration):
    integration.record_success({"products_found": 12})


@when("the integration is disabled")
def disable_integration(integration):
    integration.disable()


@when("the integration is enabled")
def enable_integration(integration):
    integration.enable()


@then("the integration is healthy")
def integration_is_healthy(integration):
    assert integration.is_healthy(3) is True


@then("the integration is unhealthy")
def integration_is_unhealthy(integration):
    assert integration.is_healthy(3) is False


@then(parsers.cfparse("the health score is {score:d}"))
def health_score_is(integration, score):
    assert integration.health_score() == score


@then(parsers.cfparse('the last error mentions "{text}"'))
def last_error_mentions(integration, text):
    assert text in integration.last_error
