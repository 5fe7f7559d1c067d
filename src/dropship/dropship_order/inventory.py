"""Inventory effects of dropship order outcomes.

- delivered: the supplier's stock is reduced by the delivered quantity for
  every line whose mapping follows supplier stock. The retail product then
  follows through the normal stock-change propagation.
- cancelled: the retail product gets the line quantity back, unless it is
  a virtual product.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.events import DropshipOrderStatusChanged
from dropship.supplier.lookups import find_product, find_supplier_product_by_id, mapping_for_pair
from dropship.supplier.product import Product
from dropship.supplier.supplier_product import SupplierProduct

logger = structlog.get_logger(__name__)


def consume_supplier_stock(dropship_order: DropshipOrder) -> int:
    """Decrement supplier stock for delivered lines. Returns units consumed."""
    repo = current_domain.repository_for(SupplierProduct)
    consumed = 0
    for item in dropship_order.items:
        mapping = mapping_for_pair(str(item.product_id), str(item.supplier_product_id))
        if mapping is None or not mapping.can_update_stock():
            continue
        supplier_product = find_supplier_product_by_id(item.supplier_product_id)
        if supplier_product is None:
            continue
        supplier_product.consume_stock(item.quantity)
        repo.add(supplier_product)
        consumed += item.quantity
    return consumed


def restore_retail_stock(dropship_order: DropshipOrder) -> int:
    """Give cancelled quantities back to the retail products. Returns units restored."""
    repo = current_domain.repository_for(Product)
    restored = 0
    for item in dropship_order.items:
        product = find_product(item.product_id)
        if product is None or not product.restock(item.quantity):
            continue
        repo.add(product)
        restored += item.quantity
    return restored


@dropship.event_handler(part_of=Product, stream_category="dropship::dropship_order")
class DropshipInventoryEffects:
    @handle(DropshipOrderStatusChanged)
    def on_dropship_status_changed(self, event: DropshipOrderStatusChanged) -> None:
        if event.new_status not in (DropshipStatus.DELIVERED.value, DropshipStatus.CANCELLED.value):
            return

        dropship_order = current_domain.repository_for(DropshipOrder).get(event.dropship_order_id)
        if event.new_status == DropshipStatus.DELIVERED.value:
            units = consume_supplier_stock(dropship_order)
            logger.info("Supplier stock consumed for delivery", dropship_order_id=str(dropship_order.id), units=units)
        else:
            units = restore_retail_stock(dropship_order)
            logger.info("Retail stock restored for cancellation", dropship_order_id=str(dropship_order.id), units=units)
