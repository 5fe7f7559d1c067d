"""Retail Product aggregate — the storefront's view of a sellable item.

Only the fields the dropship engine reads or writes are modelled: price and
supplier cost (minor units), stock, and whether the product is virtual or
dropship-eligible.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Float, Integer, String

from dropship.domain import dropship
from dropship.supplier.events import ProductRegistered, ProductRepriced


@dropship.aggregate
class Product:
    sku = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    price = Integer(default=0, min_value=0)
    supplier_cost = Integer(min_value=0)
    profit_margin = Float()  # percentage of retail price
    stock_quantity = Integer(default=0, min_value=0)
    is_virtual = Boolean(default=False)
    is_dropship = Boolean(default=False)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(
        cls,
        sku: str,
        name: str,
        price: int,
        stock_quantity: int = 0,
        is_dropship: bool = False,
        is_virtual: bool = False,
    ):
        now = datetime.now(UTC)
        product = cls(
            sku=sku,
            name=name,
            price=price,
            stock_quantity=stock_quantity,
            is_dropship=is_dropship,
            is_virtual=is_virtual,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            ProductRegistered(
                product_id=str(product.id),
                sku=sku,
                price=price,
                is_dropship=is_dropship,
                registered_at=now,
            )
        )
        return product

    def reprice(self, retail_price: int, supplier_cost: int) -> None:
        """Set a new retail price derived from ``supplier_cost``."""
        now = datetime.now(UTC)
        old_price = self.price or 0
        self.price = retail_price
        self.supplier_cost = supplier_cost
        self.profit_margin = (
            round((retail_price - supplier_cost) / retail_price * 100, 2) if retail_price > 0 else 0.0
        )
        self.updated_at = now
        self.raise_(
            ProductRepriced(
                product_id=str(self.id),
                old_price=old_price,
                new_price=retail_price,
                supplier_cost=supplier_cost,
                repriced_at=now,
            )
        )

    def set_stock(self, quantity: int) -> None:
        self.stock_quantity = max(0, quantity)
        self.updated_at = datetime.now(UTC)

    def restock(self, quantity: int) -> bool:
        """Return units to stock. Virtual products have no stock to restore."""
        if self.is_virtual:
            return False
        self.set_stock((self.stock_quantity or 0) + quantity)
        return True
