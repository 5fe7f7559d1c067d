"""SupplierProduct aggregate — one SKU in a supplier's catalog.

``(supplier_id, supplier_sku)`` is unique. Prices are integer minor units.
Records are created and updated only by the catalog sync engine and by
inbound product webhooks; every effective price or stock change raises an
event so mapped retail products can follow.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from dropship.domain import dropship
from dropship.supplier.events import (
    SupplierProductDiscontinued,
    SupplierProductPriceChanged,
    SupplierProductRegistered,
    SupplierProductStockChanged,
)


class SyncStatus(Enum):
    SYNCED = "synced"
    PENDING_SYNC = "pending_sync"
    SYNC_FAILED = "sync_failed"
    OUT_OF_SYNC = "out_of_sync"
    SUPPLIER_DISCONTINUED = "supplier_discontinued"


@dropship.aggregate
class SupplierProduct:
    supplier_id = Identifier(required=True)
    supplier_sku = String(required=True, max_length=100)
    name = String(max_length=255)
    description = Text()
    price = Integer(default=0, min_value=0)
    stock_quantity = Integer(default=0, min_value=0)
    sync_status = String(
        max_length=30,
        choices=SyncStatus,
        default=SyncStatus.PENDING_SYNC.value,
    )
    is_active = Boolean(default=True)
    last_synced_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(
        cls,
        supplier_id: str,
        supplier_sku: str,
        name: str | None = None,
        price: int = 0,
        stock_quantity: int = 0,
        sync_status: str = SyncStatus.SYNCED.value,
    ):
        now = datetime.now(UTC)
        product = cls(
            supplier_id=supplier_id,
            supplier_sku=supplier_sku,
            name=name,
            price=price,
            stock_quantity=stock_quantity,
            sync_status=sync_status,
            last_synced_at=now,
            created_at=now,
            updated_at=now,
        )
        product.raise_(
            SupplierProductRegistered(
                supplier_product_id=str(product.id),
                supplier_id=supplier_id,
                supplier_sku=supplier_sku,
                price=price,
                stock_quantity=stock_quantity,
                registered_at=now,
            )
        )
        return product

    def has_stock_for(self, quantity: int) -> bool:
        return bool(self.is_active) and (self.stock_quantity or 0) >= quantity

    def update_price(self, new_price: int) -> bool:
        """Apply a new supplier price. Returns False when nothing changed."""
        old_price = self.price or 0
        if new_price == old_price:
            return False

        now = datetime.now(UTC)
        self.price = new_price
        self._mark_synced(now)
        self.raise_(
            SupplierProductPriceChanged(
                supplier_product_id=str(self.id),
                supplier_id=str(self.supplier_id),
                supplier_sku=self.supplier_sku,
                old_price=old_price,
                new_price=new_price,
                changed_at=now,
            )
        )
        return True

    def update_stock(self, new_quantity: int) -> bool:
        """Apply a new supplier stock level. Returns False when nothing changed."""
        new_quantity = max(0, new_quantity)
        old_quantity = self.stock_quantity or 0
        if new_quantity == old_quantity:
            return False

        now = datetime.now(UTC)
        self.stock_quantity = new_quantity
        self._mark_synced(now)
        self.raise_(
            SupplierProductStockChanged(
                supplier_product_id=str(self.id),
                supplier_id=str(self.supplier_id),
                supplier_sku=self.supplier_sku,
                old_quantity=old_quantity,
                new_quantity=new_quantity,
                changed_at=now,
            )
        )
        return True

    def rename(self, name: str) -> bool:
        if not name or name == self.name:
            return False
        self.name = name
        self._mark_synced(datetime.now(UTC))
        return True

    def consume_stock(self, quantity: int) -> None:
        """Decrement stock after a delivery, never below zero."""
        self.update_stock((self.stock_quantity or 0) - quantity)

    def discontinue(self) -> None:
        """Deactivate the SKU; it is no longer offered by the supplier."""
        if not self.is_active and self.sync_status == SyncStatus.SUPPLIER_DISCONTINUED.value:
            return
        now = datetime.now(UTC)
        self.is_active = False
        self.sync_status = SyncStatus.SUPPLIER_DISCONTINUED.value
        self.updated_at = now
        self.raise_(
            SupplierProductDiscontinued(
                supplier_product_id=str(self.id),
                supplier_id=str(self.supplier_id),
                supplier_sku=self.supplier_sku,
                discontinued_at=now,
            )
        )

    def reactivate(self) -> None:
        if self.is_active:
            return
        self.is_active = True
        self._mark_synced(datetime.now(UTC))

    def _mark_synced(self, now: datetime) -> None:
        self.sync_status = SyncStatus.SYNCED.value
        self.last_synced_at = now
        self.updated_at = now
