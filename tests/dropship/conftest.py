import json

import pytest
from protean import current_domain
from protean.integrations.pytest import DomainFixture

from dropship.order.placement import PlaceOrder, RecordOrderPayment
from dropship.settings import reset_settings
from dropship.supplier.catalog import LinkProductToSupplier, RegisterProduct, RegisterSupplierProduct
from dropship.supplier.registration import ConfigureIntegration, RegisterSupplier
from dropship.transport import set_email_adapter
from dropship.transport.fake_email import FakeEmailAdapter

SHIPPING_ADDRESS = {
    "name": "Jane Doe",
    "line1": "1 High Street",
    "city": "Leeds",
    "postcode": "LS1 1AA",
    "country": "GB",
}

ADMIN_EMAIL = "ops@shop.test"


@pytest.fixture(scope="session")
def dropship_bed():
    from dropship.domain import dropship

    bed = DomainFixture(dropship)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(dropship_bed):
    with dropship_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _policy(monkeypatch):
    """No real sleeping between transport attempts, and one admin to alert."""
    monkeypatch.setenv("DROPSHIP_TRANSPORT_BACKOFF_INITIAL_SECONDS", "0")
    monkeypatch.setenv("DROPSHIP_TRANSPORT_BACKOFF_MAX_SECONDS", "0")
    monkeypatch.setenv("DROPSHIP_ADMIN_EMAILS", json.dumps([ADMIN_EMAIL]))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def email_adapter():
    adapter = FakeEmailAdapter()
    set_email_adapter(adapter)
    return adapter


@pytest.fixture
def register_supplier():
    """Register a supplier and, unless ``integration_type`` is None, its integration."""

    def _register(
        name="Acme Supplies",
        integration_type="email",
        status="active",
        email="sales@acme.test",
        **integration,
    ):
        supplier_id = current_domain.process(
            RegisterSupplier(name=name, email=email, status=status),
            asynchronous=False,
        )
        if integration_type is None:
            return supplier_id, None

        if integration_type == "email":
            integration.setdefault("email_address", "orders@acme.test")
        if isinstance(integration.get("options"), dict):
            integration["options"] = json.dumps(integration["options"])
        integration_id = current_domain.process(
            ConfigureIntegration(supplier_id=supplier_id, integration_type=integration_type, **integration),
            asynchronous=False,
        )
        return supplier_id, integration_id

    return _register


@pytest.fixture
def stock_product():
    """A supplier SKU, the retail product it fulfils, and the mapping between them."""

    def _stock(
        supplier_id,
        sku="SKU-1",
        cost=1000,
        stock=50,
        retail=1500,
        product_stock=0,
        is_virtual=False,
        **mapping,
    ):
        supplier_product_id = current_domain.process(
            RegisterSupplierProduct(
                supplier_id=supplier_id,
                supplier_sku=sku,
                name=f"Supplier {sku}",
                price=cost,
                stock_quantity=stock,
            ),
            asynchronous=False,
        )
        retail_sku = f"RET-{sku}-{supplier_id[:8]}"
        product_id = current_domain.process(
            RegisterProduct(
                sku=retail_sku,
                name=f"Retail {sku}",
                price=retail,
                stock_quantity=product_stock,
                is_dropship=True,
                is_virtual=is_virtual,
            ),
            asynchronous=False,
        )
        mapping.setdefault("markup_percentage", 50.0)
        mapping_id = current_domain.process(
            LinkProductToSupplier(product_id=product_id, supplier_product_id=supplier_product_id, **mapping),
            asynchronous=False,
        )
        return {
            "product_id": product_id,
            "supplier_product_id": supplier_product_id,
            "mapping_id": mapping_id,
            "sku": retail_sku,
            "supplier_sku": sku,
            "retail": retail,
        }

    return _stock


@pytest.fixture
def place_order():
    """Place an order for ``(catalog entry, quantity)`` lines; paying it starts decomposition."""

    def _place(lines, paid=True, address=SHIPPING_ADDRESS):
        items = [
            {
                "product_id": entry["product_id"],
                "sku": entry["sku"],
                "product_name": f"Retail {entry['supplier_sku']}",
                "quantity": quantity,
                "unit_price": entry["retail"],
            }
            for entry, quantity in lines
        ]
        order_id = current_domain.process(
            PlaceOrder(
                customer_name="Jane Doe",
                customer_email="jane@example.com",
                shipping_address=json.dumps(address) if address else None,
                items=json.dumps(items),
            ),
            asynchronous=False,
        )
        if paid:
            current_domain.process(RecordOrderPayment(order_id=order_id), asynchronous=False)
        return order_id

    return _place
