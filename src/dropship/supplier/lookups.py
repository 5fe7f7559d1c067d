"""Catalog read helpers shared by decomposition, submission, webhooks and sync."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dropship.supplier.integration import SupplierIntegration
from dropship.supplier.mapping import ProductSupplierMapping
from dropship.supplier.product import Product
from dropship.supplier.supplier import Supplier
from dropship.supplier.supplier_product import SupplierProduct


def _filter(aggregate_cls, **criteria) -> list:
    return current_domain.repository_for(aggregate_cls)._dao.query.filter(**criteria).all().items


def _get(aggregate_cls, identifier):
    try:
        return current_domain.repository_for(aggregate_cls).get(identifier)
    except ObjectNotFoundError:
        return None


def find_supplier(supplier_id: str) -> Supplier | None:
    return _get(Supplier, supplier_id)


def find_supplier_by_name(name: str) -> Supplier | None:
    results = _filter(Supplier, name=name)
    return results[0] if results else None


def active_integration_for(supplier_id: str) -> SupplierIntegration | None:
    """The supplier's active integration, automated types first."""
    integrations = _filter(SupplierIntegration, supplier_id=supplier_id, is_active=True)
    if not integrations:
        return None
    integrations.sort(key=lambda i: (not i.is_automated(), i.created_at))
    return integrations[0]


def integration_by_api_key(api_key: str) -> SupplierIntegration | None:
    results = _filter(SupplierIntegration, api_key=api_key, is_active=True)
    return results[0] if results else None


def supplier_products_for(supplier_id: str) -> list[SupplierProduct]:
    return _filter(SupplierProduct, supplier_id=supplier_id)


def find_supplier_product(supplier_id: str, supplier_sku: str) -> SupplierProduct | None:
    results = _filter(SupplierProduct, supplier_id=supplier_id, supplier_sku=supplier_sku)
    return results[0] if results else None


def find_supplier_product_by_id(supplier_product_id: str) -> SupplierProduct | None:
    return _get(SupplierProduct, supplier_product_id)


def find_product(product_id: str) -> Product | None:
    return _get(Product, product_id)


def active_mappings_for_product(product_id: str) -> list[ProductSupplierMapping]:
    """Active mappings of a retail product, primary first."""
    mappings = _filter(ProductSupplierMapping, product_id=product_id, is_active=True)
    mappings.sort(key=lambda m: not m.is_primary)
    return mappings


def active_mappings_for_supplier_product(supplier_product_id: str) -> list[ProductSupplierMapping]:
    return _filter(ProductSupplierMapping, supplier_product_id=supplier_product_id, is_active=True)


def mapping_for_pair(product_id: str, supplier_product_id: str) -> ProductSupplierMapping | None:
    results = _filter(
        ProductSupplierMapping,
        product_id=product_id,
        supplier_product_id=supplier_product_id,
        is_active=True,
    )
    return results[0] if results else None


def other_suppliers_carrying(supplier_sku: str, exclude_supplier_id: str, quantity: int) -> list[SupplierProduct]:
    """Active SKUs with enough stock at any supplier other than ``exclude_supplier_id``."""
    candidates = _filter(SupplierProduct, supplier_sku=supplier_sku, is_active=True)
    return [
        sp
        for sp in candidates
        if str(sp.supplier_id) != str(exclude_supplier_id) and (sp.stock_quantity or 0) >= quantity
    ]
