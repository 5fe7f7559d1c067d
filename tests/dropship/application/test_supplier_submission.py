"""Application tests for submitting dropship orders over each transport."""

import json
from datetime import UTC, datetime, timedelta

import httpx
from protean import current_domain

from dropship.dropship_order.aggregation import dropship_orders_for
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.submission import SubmitDropshipOrder
from dropship.order.order import Order, OrderStatus
from dropship.supplier.integration import SupplierIntegration
from dropship.supplier.product import Product
from dropship.transport import set_ftp_factory, set_http_client
from dropship.webhook.signature import sign

ADMIN_EMAIL = "ops@shop.test"


def _mock_http(responder):
    """Route every outbound request through ``responder`` and keep the requests."""
    requests = []

    def handler(request):
        requests.append(request)
        return responder(request)

    set_http_client(httpx.Client(transport=httpx.MockTransport(handler)))
    return requests


class FakeFTP:
    """Records an upload session in memory."""

    def __init__(self):
        self.connected_to = None
        self.logged_in_as = None
        self.passive = None
        self.cwd_path = None
        self.files = {}

    def connect(self, host, port, timeout=None):
        self.connected_to = (host, port)

    def login(self, user, password):
        self.logged_in_as = user

    def set_pasv(self, value):
        self.passive = value

    def cwd(self, path):
        self.cwd_path = path

    def storbinary(self, command, fp):
        self.files[command.removeprefix("STOR ")] = fp.read().decode("utf-8")

    def quit(self):
        pass

    def close(self):
        pass


def _only_dropship_order(order_id) -> DropshipOrder:
    (dropship_order,) = dropship_orders_for(order_id)
    return dropship_order


def _integration(integration_id) -> SupplierIntegration:
    return current_domain.repository_for(SupplierIntegration).get(integration_id)


class TestApiSubmission:
    def test_supplier_order_id_confirms_order(self, register_supplier, stock_product, place_order):
        requests = _mock_http(
            lambda request: httpx.Response(
                201,
                json={"order_id": "SUP-778", "estimated_delivery": "2026-11-01T00:00:00Z"},
            )
        )
        supplier_id, integration_id = register_supplier(
            integration_type="api",
            api_endpoint="https://acme.test/v1/",
            api_key="key-123",
        )
        order_id = place_order([(stock_product(supplier_id, sku="W-1"), 2)])

        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.CONFIRMED_BY_SUPPLIER.value
        assert dropship_order.supplier_order_id == "SUP-778"
        assert dropship_order.estimated_delivery is not None

        (request,) = requests
        assert str(request.url) == "https://acme.test/v1/orders"
        assert request.headers["Authorization"] == "Bearer key-123"
        body = json.loads(request.content)
        assert body["external_order_id"] == str(dropship_order.id)
        assert body["items"][0]["sku"] == "W-1"
        assert body["items"][0]["quantity"] == 2

        integration = _integration(integration_id)
        assert integration.consecutive_failures == 0
        assert json.loads(integration.sync_statistics)["order_sent"] is True

    def test_confirmation_rolls_up_to_parent_order(self, register_supplier, stock_product, place_order):
        _mock_http(lambda request: httpx.Response(200, json={"order_id": "SUP-1"}))
        supplier_id, _ = register_supplier(integration_type="api", api_endpoint="https://acme.test", api_key="k")
        order_id = place_order([(stock_product(supplier_id), 1)])

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PROCESSING.value
        assert order.fulfillment_status == "fulfilled"

    def test_accepted_without_reference_is_sent(self, register_supplier, stock_product, place_order):
        _mock_http(lambda request: httpx.Response(202, json={"accepted": True}))
        supplier_id, _ = register_supplier(integration_type="api", api_endpoint="https://acme.test", api_key="k")
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert _only_dropship_order(order_id).status == DropshipStatus.SENT_TO_SUPPLIER.value

    def test_server_errors_are_retried_then_recorded(self, register_supplier, stock_product, place_order):
        requests = _mock_http(lambda request: httpx.Response(503))
        supplier_id, integration_id = register_supplier(
            integration_type="api", api_endpoint="https://acme.test", api_key="k"
        )
        before = datetime.now(UTC)
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert len(requests) == 3
        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.PENDING.value
        assert "Failed to send to supplier" in dropship_order.notes
        retry_at = dropship_order.next_retry_at
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=UTC)
        assert before + timedelta(seconds=299) <= retry_at <= datetime.now(UTC) + timedelta(seconds=301)

        integration = _integration(integration_id)
        assert integration.consecutive_failures == 1
        assert "503" in integration.last_error

    def test_client_errors_are_not_retried(self, register_supplier, stock_product, place_order):
        requests = _mock_http(lambda request: httpx.Response(400, json={"error": "bad sku"}))
        supplier_id, integration_id = register_supplier(
            integration_type="api", api_endpoint="https://acme.test", api_key="k"
        )
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert len(requests) == 1
        assert _only_dropship_order(order_id).status == DropshipStatus.PENDING.value
        assert _integration(integration_id).consecutive_failures == 1

    def test_missing_credentials_put_order_on_hold(
        self, register_supplier, stock_product, place_order, email_adapter
    ):
        supplier_id, integration_id = register_supplier(integration_type="api", api_endpoint="https://acme.test")
        order_id = place_order([(stock_product(supplier_id), 1)])

        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.ON_HOLD.value
        assert "API configuration incomplete" in dropship_order.notes
        assert _integration(integration_id).consecutive_failures == 1

        (alert,) = email_adapter.messages_to(ADMIN_EMAIL)
        assert "needs attention" in alert["subject"]

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.ON_HOLD.value


class TestWebhookSubmission:
    def test_signed_event_is_posted(self, register_supplier, stock_product, place_order):
        requests = _mock_http(lambda request: httpx.Response(200, json={"received": True}))
        supplier_id, _ = register_supplier(
            integration_type="webhook",
            webhook_url="https://hooks.acme.test/orders",
            webhook_secret="whsec",
        )
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert _only_dropship_order(order_id).status == DropshipStatus.SENT_TO_SUPPLIER.value
        (request,) = requests
        event = json.loads(request.content)
        assert event["event_type"] == "order.created"
        assert event["webhook_id"].startswith("wh_")
        assert request.headers["X-Event-Type"] == "order.created"
        assert request.headers["X-Webhook-Signature"] == sign(event, "whsec")

    def test_missing_url_is_a_configuration_error(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier(integration_type="webhook")
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert _only_dropship_order(order_id).status == DropshipStatus.ON_HOLD.value


class TestFtpSubmission:
    def test_csv_sheet_is_uploaded(self, register_supplier, stock_product, place_order):
        ftp = FakeFTP()
        set_ftp_factory(lambda: ftp)
        supplier_id, _ = register_supplier(
            integration_type="ftp",
            ftp_host="ftp.acme.test",
            ftp_port=2121,
            ftp_username="shop",
            ftp_password="secret",
            options={"upload_directory": "/incoming"},
        )
        order_id = place_order([(stock_product(supplier_id, sku="W-1"), 4)])

        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.SENT_TO_SUPPLIER.value
        assert ftp.connected_to == ("ftp.acme.test", 2121)
        assert ftp.logged_in_as == "shop"
        assert ftp.passive is True
        assert ftp.cwd_path == "/incoming"

        ((filename, content),) = ftp.files.items()
        assert filename.startswith(f"order_{dropship_order.id}_")
        assert filename.endswith(".csv")
        assert "W-1" in content
        assert json.loads(dropship_order.supplier_response)["response"]["upload_path"].startswith("/incoming/")

    def test_missing_credentials_put_order_on_hold(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier(integration_type="ftp", ftp_host="ftp.acme.test")
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert _only_dropship_order(order_id).status == DropshipStatus.ON_HOLD.value


class TestEmailSubmission:
    def test_mail_failure_leaves_order_pending(self, register_supplier, stock_product, place_order, email_adapter):
        email_adapter.configure(should_succeed=False)
        supplier_id, integration_id = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)])

        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.PENDING.value
        assert "Email delivery failed" in dropship_order.notes
        assert _integration(integration_id).consecutive_failures == 1

    def test_manual_integration_mails_supplier_contact(
        self, register_supplier, stock_product, place_order, email_adapter
    ):
        supplier_id, _ = register_supplier(integration_type="manual", email="contact@acme.test")
        order_id = place_order([(stock_product(supplier_id), 1)])

        assert _only_dropship_order(order_id).status == DropshipStatus.SENT_TO_SUPPLIER.value
        assert len(email_adapter.messages_to("contact@acme.test")) == 1


class TestSubmissionGuards:
    def test_no_integration_puts_order_on_hold(self, register_supplier, stock_product, place_order, email_adapter):
        supplier_id, _ = register_supplier(integration_type=None)
        order_id = place_order([(stock_product(supplier_id), 1)])

        dropship_order = _only_dropship_order(order_id)
        assert dropship_order.status == DropshipStatus.ON_HOLD.value
        assert "No active integration" in dropship_order.notes
        assert len(email_adapter.messages_to(ADMIN_EMAIL)) == 1

    def test_only_pending_orders_are_submitted(self, register_supplier, stock_product, place_order):
        supplier_id, _ = register_supplier()
        order_id = place_order([(stock_product(supplier_id), 1)])
        dropship_order = _only_dropship_order(order_id)

        outcome = current_domain.process(
            SubmitDropshipOrder(dropship_order_id=str(dropship_order.id)),
            asynchronous=False,
        )
        assert outcome == "skipped"

    def test_exhausted_retries_cancel_and_alert(self, register_supplier, stock_product, place_order, email_adapter):
        _mock_http(lambda request: httpx.Response(500))
        supplier_id, _ = register_supplier(integration_type="api", api_endpoint="https://acme.test", api_key="k")
        entry = stock_product(supplier_id, product_stock=10)
        order_id = place_order([(entry, 2)])

        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = _only_dropship_order(order_id)
        dropship_order.retry_count = 3
        repo.add(dropship_order)

        outcome = current_domain.process(
            SubmitDropshipOrder(dropship_order_id=str(dropship_order.id)),
            asynchronous=False,
        )

        assert outcome == DropshipStatus.CANCELLED.value
        dropship_order = repo.get(str(dropship_order.id))
        assert dropship_order.status == DropshipStatus.CANCELLED.value
        assert dropship_order.auto_retry_enabled is False
        assert any("failed" in m["subject"] for m in email_adapter.messages_to(ADMIN_EMAIL))

        # Cancellation hands the units back to the retail product
        product = current_domain.repository_for(Product).get(entry["product_id"])
        assert product.stock_quantity == 12

        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.CANCELLED.value
