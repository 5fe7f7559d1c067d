"""Catalog administration — supplier SKUs, retail products and their mappings."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from dropship.domain import dropship
from dropship.supplier.lookups import find_supplier_product, mapping_for_pair
from dropship.supplier.mapping import MarkupType, ProductSupplierMapping
from dropship.supplier.product import Product
from dropship.supplier.supplier import Supplier
from dropship.supplier.supplier_product import SupplierProduct


@dropship.command(part_of="SupplierProduct")
class RegisterSupplierProduct:
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True, max_length=100)
    name = String(max_length=255)
    price = Integer(required=True, min_value=0)  # minor units
    stock_quantity = Integer(default=0, min_value=0)


@dropship.command_handler(part_of=SupplierProduct)
class RegisterSupplierProductHandler:
    @handle(RegisterSupplierProduct)
    def register_supplier_product(self, command):
        current_domain.repository_for(Supplier).get(command.supplier_id)
        if find_supplier_product(command.supplier_id, command.supplier_sku) is not None:
            raise ValidationError({"supplier_sku": [f"SKU {command.supplier_sku} already exists for this supplier"]})

        product = SupplierProduct.register(
            supplier_id=command.supplier_id,
            supplier_sku=command.supplier_sku,
            name=command.name,
            price=command.price,
            stock_quantity=command.stock_quantity,
        )
        current_domain.repository_for(SupplierProduct).add(product)
        return str(product.id)


@dropship.command(part_of="Product")
class RegisterProduct:
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    price = Integer(required=True, min_value=0)
    stock_quantity = Integer(default=0, min_value=0)
    is_dropship = Boolean(default=False)
    is_virtual = Boolean(default=False)


@dropship.command_handler(part_of=Product)
class RegisterProductHandler:
    @handle(RegisterProduct)
    def register_product(self, command):
        product = Product.register(
            sku=command.sku,
            name=command.name,
            price=command.price,
            stock_quantity=command.stock_quantity,
            is_dropship=command.is_dropship,
            is_virtual=command.is_virtual,
        )
        current_domain.repository_for(Product).add(product)
        return str(product.id)


@dropship.command(part_of="ProductSupplierMapping")
class LinkProductToSupplier:
    product_id = Identifier(required=True)
    supplier_product_id = Identifier(required=True)
    markup_type = String(max_length=20, default=MarkupType.PERCENTAGE.value)
    markup_percentage = Float(default=0.0)
    fixed_markup = Integer(default=0)
    minimum_stock_threshold = Integer(default=0)
    auto_update_price = Boolean(default=True)
    auto_update_stock = Boolean(default=True)
    is_primary = Boolean(default=True)


@dropship.command_handler(part_of=ProductSupplierMapping)
class LinkProductToSupplierHandler:
    @handle(LinkProductToSupplier)
    def link_product(self, command):
        current_domain.repository_for(Product).get(command.product_id)
        supplier_product = current_domain.repository_for(SupplierProduct).get(command.supplier_product_id)

        if mapping_for_pair(command.product_id, command.supplier_product_id) is not None:
            raise ValidationError({"supplier_product_id": ["Product is already mapped to this supplier product"]})

        mapping = ProductSupplierMapping.link(
            product_id=command.product_id,
            supplier_id=str(supplier_product.supplier_id),
            supplier_product_id=command.supplier_product_id,
            markup_type=command.markup_type,
            markup_percentage=command.markup_percentage,
            fixed_markup=command.fixed_markup,
            minimum_stock_threshold=command.minimum_stock_threshold,
            auto_update_price=command.auto_update_price,
            auto_update_stock=command.auto_update_stock,
            is_primary=command.is_primary,
        )
        current_domain.repository_for(ProductSupplierMapping).add(mapping)
        return str(mapping.id)
