"""Supplier catalog events — facts about suppliers, their products and mappings.

Price and stock changes on a SupplierProduct are published as events so the
pricing policy and stock propagation run as separate handlers rather than
inside the sync batch or webhook that observed the change.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from dropship.domain import dropship


@dropship.event(part_of="Supplier")
class SupplierRegistered:
    """A new supplier was registered."""

    __version__ = 1

    supplier_id = Identifier(required=True)
    name = String(required=True)
    status = String(required=True)
    registered_at = DateTime(required=True)


@dropship.event(part_of="Supplier")
class SupplierStatusChanged:
    """A supplier moved to a different lifecycle status."""

    __version__ = 1

    supplier_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@dropship.event(part_of="SupplierIntegration")
class IntegrationConfigured:
    """A transport integration was configured for a supplier."""

    __version__ = 1

    integration_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    integration_type = String(required=True)
    configured_at = DateTime(required=True)


@dropship.event(part_of="SupplierProduct")
class SupplierProductRegistered:
    """A supplier SKU was added to the local catalog."""

    __version__ = 1

    supplier_product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True)
    price = Integer(required=True)
    stock_quantity = Integer(required=True)
    registered_at = DateTime(required=True)


@dropship.event(part_of="SupplierProduct")
class SupplierProductPriceChanged:
    """The supplier's price for a SKU changed (minor units)."""

    __version__ = 1

    supplier_product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True)
    old_price = Integer(required=True)
    new_price = Integer(required=True)
    changed_at = DateTime(required=True)


@dropship.event(part_of="SupplierProduct")
class SupplierProductStockChanged:
    """The supplier's stock level for a SKU changed."""

    __version__ = 1

    supplier_product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True)
    old_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    changed_at = DateTime(required=True)


@dropship.event(part_of="SupplierProduct")
class SupplierProductDiscontinued:
    """A supplier SKU disappeared from the feed or was discontinued by webhook."""

    __version__ = 1

    supplier_product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True)
    discontinued_at = DateTime(required=True)


@dropship.event(part_of="ProductSupplierMapping")
class ProductLinkedToSupplier:
    """A retail product was mapped to a supplier SKU."""

    __version__ = 1

    mapping_id = Identifier(required=True)
    product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_product_id = Identifier(required=True)
    markup_type = String(required=True)
    linked_at = DateTime(required=True)


@dropship.event(part_of="ProductSupplierMapping")
class PriceChangeHeld:
    """An extreme supplier price swing was held for manual approval."""

    __version__ = 1

    mapping_id = Identifier(required=True)
    product_id = Identifier(required=True)
    old_price = Integer(required=True)
    new_price = Integer(required=True)
    change_percentage = Float(required=True)
    reason = Text()
    held_at = DateTime(required=True)


@dropship.event(part_of="ProductSupplierMapping")
class PriceChangeApproved:
    """A held price change was approved and applied."""

    __version__ = 1

    mapping_id = Identifier(required=True)
    product_id = Identifier(required=True)
    new_price = Integer(required=True)
    approved_at = DateTime(required=True)


@dropship.event(part_of="ProductSupplierMapping")
class PriceChangeRejected:
    """A held price change was discarded."""

    __version__ = 1

    mapping_id = Identifier(required=True)
    product_id = Identifier(required=True)
    rejected_price = Integer(required=True)
    rejected_at = DateTime(required=True)


@dropship.event(part_of="Product")
class ProductRegistered:
    """A retail product was registered."""

    __version__ = 1

    product_id = Identifier(required=True)
    sku = String(required=True)
    price = Integer(required=True)
    is_dropship = Boolean(default=False)
    registered_at = DateTime(required=True)


@dropship.event(part_of="Product")
class ProductRepriced:
    """A retail product's price was recomputed from its supplier cost."""

    __version__ = 1

    product_id = Identifier(required=True)
    old_price = Integer(required=True)
    new_price = Integer(required=True)
    supplier_cost = Integer(required=True)
    repriced_at = DateTime(required=True)
