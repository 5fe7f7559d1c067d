"""ProductSupplierMapping aggregate — links a retail Product to a supplier SKU.

Carries the markup rule used to derive the retail price from the supplier
cost, the auto-update flags, and any price change held for manual approval.
At most one active mapping exists per (product, supplier product) pair.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from dropship.domain import dropship
from dropship.supplier.events import (
    PriceChangeApproved,
    PriceChangeHeld,
    PriceChangeRejected,
    ProductLinkedToSupplier,
)


class MarkupType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dropship.aggregate
class ProductSupplierMapping:
    product_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_product_id = Identifier(required=True)
    is_primary = Boolean(default=True)
    is_active = Boolean(default=True)
    markup_type = String(max_length=20, choices=MarkupType, default=MarkupType.PERCENTAGE.value)
    markup_percentage = Float(default=0.0, min_value=0.0)
    fixed_markup = Integer(default=0, min_value=0)  # minor units
    minimum_stock_threshold = Integer(default=0, min_value=0)
    auto_update_price = Boolean(default=True)
    auto_update_stock = Boolean(default=True)
    pending_price_approval = Text()  # JSON: old_price, new_price, change_percentage, held_at, reason
    last_price_update = DateTime()
    last_stock_update = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def markup_must_match_type(self):
        if self.markup_type == MarkupType.FIXED.value and self.fixed_markup is None:
            raise ValidationError({"fixed_markup": ["Fixed markup requires an amount"]})
        if self.markup_type == MarkupType.PERCENTAGE.value and self.markup_percentage is None:
            raise ValidationError({"markup_percentage": ["Percentage markup requires a percentage"]})

    @classmethod
    def link(cls, product_id: str, supplier_id: str, supplier_product_id: str, **rule):
        now = datetime.now(UTC)
        mapping = cls(
            product_id=product_id,
            supplier_id=supplier_id,
            supplier_product_id=supplier_product_id,
            created_at=now,
            updated_at=now,
            **rule,
        )
        mapping.raise_(
            ProductLinkedToSupplier(
                mapping_id=str(mapping.id),
                product_id=product_id,
                supplier_id=supplier_id,
                supplier_product_id=supplier_product_id,
                markup_type=mapping.markup_type,
                linked_at=now,
            )
        )
        return mapping

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def calculate_retail_price(self, supplier_price: int) -> int:
        if self.markup_type == MarkupType.PERCENTAGE.value:
            return int(round(supplier_price * (1 + (self.markup_percentage or 0.0) / 100)))
        return supplier_price + (self.fixed_markup or 0)

    def can_update_price(self) -> bool:
        return bool(self.auto_update_price and self.is_active)

    def can_update_stock(self) -> bool:
        return bool(self.auto_update_stock and self.is_active)

    def available_stock(self, supplier_stock: int) -> int:
        return max(0, supplier_stock - (self.minimum_stock_threshold or 0))

    @property
    def pending_change(self) -> dict | None:
        return json.loads(self.pending_price_approval) if self.pending_price_approval else None

    def record_price_update(self) -> None:
        now = datetime.now(UTC)
        self.last_price_update = now
        self.updated_at = now

    def record_stock_update(self) -> None:
        now = datetime.now(UTC)
        self.last_stock_update = now
        self.updated_at = now

    def hold_price_change(self, old_price: int, new_price: int, change_percentage: float, reason: str) -> None:
        """Stop automatic repricing and park the change for a human decision."""
        now = datetime.now(UTC)
        self.auto_update_price = False
        self.pending_price_approval = json.dumps(
            {
                "old_price": old_price,
                "new_price": new_price,
                "change_percentage": change_percentage,
                "held_at": now.isoformat(),
                "reason": reason,
            }
        )
        self.updated_at = now
        self.raise_(
            PriceChangeHeld(
                mapping_id=str(self.id),
                product_id=str(self.product_id),
                old_price=old_price,
                new_price=new_price,
                change_percentage=change_percentage,
                reason=reason,
                held_at=now,
            )
        )

    def approve_pending_change(self) -> int:
        """Clear the held change, re-enable auto pricing and return the approved supplier price."""
        pending = self.pending_change
        if pending is None:
            raise ValidationError({"pending_price_approval": ["No price change is awaiting approval"]})

        now = datetime.now(UTC)
        self.pending_price_approval = None
        self.auto_update_price = True
        self.last_price_update = now
        self.updated_at = now
        self.raise_(
            PriceChangeApproved(
                mapping_id=str(self.id),
                product_id=str(self.product_id),
                new_price=pending["new_price"],
                approved_at=now,
            )
        )
        return pending["new_price"]

    def reject_pending_change(self) -> None:
        pending = self.pending_change
        if pending is None:
            raise ValidationError({"pending_price_approval": ["No price change is awaiting approval"]})

        now = datetime.now(UTC)
        self.pending_price_approval = None
        self.updated_at = now
        self.raise_(
            PriceChangeRejected(
                mapping_id=str(self.id),
                product_id=str(self.product_id),
                rejected_price=pending["new_price"],
                rejected_at=now,
            )
        )

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = datetime.now(UTC)
