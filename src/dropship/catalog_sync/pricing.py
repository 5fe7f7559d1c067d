"""Supplier price and stock propagation to mapped retail products.

Runs on every SupplierProduct price or stock change, whichever path
observed it (catalog sync or product webhook).

Price changes, measured on the supplier price:
    - at or above the extreme threshold (25%): held on the mapping for
      manual approval; automatic pricing is switched off for that mapping
    - at or above the significant threshold (10%): applied, logged as a warning
    - below that: applied silently
A held change is resolved with ``ApprovePriceChange`` or ``RejectPriceChange``.

Stock changes set the retail stock to the supplier stock less the mapping's
safety threshold, never below zero.
"""

import structlog
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.queues import DropshipQueue
from dropship.settings import get_settings
from dropship.supplier.events import SupplierProductPriceChanged, SupplierProductStockChanged
from dropship.supplier.lookups import active_mappings_for_supplier_product, find_product
from dropship.supplier.mapping import ProductSupplierMapping
from dropship.supplier.product import Product

logger = structlog.get_logger(__name__)


class PriceDecision:
    APPLIED = "applied"
    SIGNIFICANT = "applied_significant"
    HELD = "held"
    SKIPPED = "skipped"


def price_change_percentage(old_price: int, new_price: int) -> float | None:
    """Relative size of the change, or None when there was no previous price."""
    if not old_price:
        return None
    return round(abs(new_price - old_price) / old_price * 100, 2)


def classify_price_change(old_price: int, new_price: int) -> str:
    settings = get_settings()
    percentage = price_change_percentage(old_price, new_price)
    if percentage is None:
        return PriceDecision.APPLIED
    if percentage >= settings.extreme_price_change_pct:
        return PriceDecision.HELD
    if percentage >= settings.significant_price_change_pct:
        return PriceDecision.SIGNIFICANT
    return PriceDecision.APPLIED


def apply_supplier_price(mapping: ProductSupplierMapping, product: Product, supplier_price: int) -> None:
    product.reprice(mapping.calculate_retail_price(supplier_price), supplier_price)
    mapping.record_price_update()


def propagate_price_change(supplier_product_id: str, old_price: int, new_price: int) -> dict[str, str]:
    """Apply or hold a supplier price change on every active mapping. Returns decisions by mapping id."""
    mapping_repo = current_domain.repository_for(ProductSupplierMapping)
    product_repo = current_domain.repository_for(Product)
    decisions = {}

    for mapping in active_mappings_for_supplier_product(supplier_product_id):
        log = logger.bind(
            queue=DropshipQueue.PRICING.value,
            mapping_id=str(mapping.id),
            product_id=str(mapping.product_id),
            old_price=old_price,
            new_price=new_price,
        )
        if not mapping.can_update_price():
            log.info("Automatic pricing disabled for mapping, price change not applied")
            decisions[str(mapping.id)] = PriceDecision.SKIPPED
            continue

        product = find_product(mapping.product_id)
        if product is None:
            log.warning("Mapped product not found")
            decisions[str(mapping.id)] = PriceDecision.SKIPPED
            continue

        decision = classify_price_change(old_price, new_price)
        percentage = price_change_percentage(old_price, new_price)
        if decision == PriceDecision.HELD:
            threshold = get_settings().extreme_price_change_pct
            mapping.hold_price_change(
                old_price,
                new_price,
                percentage,
                reason=f"Price change of {percentage}% exceeds {threshold:g}% threshold",
            )
            log.warning("Extreme supplier price change held for approval", change_percentage=percentage)
        else:
            apply_supplier_price(mapping, product, new_price)
            product_repo.add(product)
            if decision == PriceDecision.SIGNIFICANT:
                log.warning("Significant supplier price change applied", change_percentage=percentage)

        mapping_repo.add(mapping)
        decisions[str(mapping.id)] = decision

    return decisions


def propagate_stock_change(supplier_product_id: str, supplier_stock: int) -> int:
    """Set mapped retail stock from the supplier's stock. Returns how many products changed."""
    mapping_repo = current_domain.repository_for(ProductSupplierMapping)
    product_repo = current_domain.repository_for(Product)
    updated = 0

    for mapping in active_mappings_for_supplier_product(supplier_product_id):
        if not mapping.can_update_stock():
            continue
        product = find_product(mapping.product_id)
        if product is None:
            continue
        product.set_stock(mapping.available_stock(supplier_stock))
        mapping.record_stock_update()
        product_repo.add(product)
        mapping_repo.add(mapping)
        updated += 1

    return updated


@dropship.event_handler(part_of=ProductSupplierMapping, stream_category="dropship::supplier_product")
class SupplierPricePropagation:
    @handle(SupplierProductPriceChanged)
    def on_price_changed(self, event: SupplierProductPriceChanged) -> None:
        propagate_price_change(str(event.supplier_product_id), event.old_price, event.new_price)

    @handle(SupplierProductStockChanged)
    def on_stock_changed(self, event: SupplierProductStockChanged) -> None:
        propagate_stock_change(str(event.supplier_product_id), event.new_quantity)


# ---------------------------------------------------------------------------
# Manual approval
# ---------------------------------------------------------------------------
@dropship.command(part_of="ProductSupplierMapping")
class ApprovePriceChange:
    mapping_id = Identifier(required=True)


@dropship.command(part_of="ProductSupplierMapping")
class RejectPriceChange:
    mapping_id = Identifier(required=True)


@dropship.command_handler(part_of=ProductSupplierMapping)
class PriceApprovalHandler:
    @handle(ApprovePriceChange)
    def approve(self, command: ApprovePriceChange) -> int:
        mapping_repo = current_domain.repository_for(ProductSupplierMapping)
        product_repo = current_domain.repository_for(Product)

        mapping = mapping_repo.get(command.mapping_id)
        supplier_price = mapping.approve_pending_change()
        product = product_repo.get(mapping.product_id)
        product.reprice(mapping.calculate_retail_price(supplier_price), supplier_price)

        product_repo.add(product)
        mapping_repo.add(mapping)
        logger.info(
            "Held price change approved",
            queue=DropshipQueue.PRICING.value,
            mapping_id=str(mapping.id),
            supplier_price=supplier_price,
            retail_price=product.price,
        )
        return product.price

    @handle(RejectPriceChange)
    def reject(self, command: RejectPriceChange) -> None:
        mapping_repo = current_domain.repository_for(ProductSupplierMapping)
        mapping = mapping_repo.get(command.mapping_id)
        mapping.reject_pending_change()
        mapping_repo.add(mapping)
        logger.info("Held price change rejected", queue=DropshipQueue.PRICING.value, mapping_id=str(mapping.id))
