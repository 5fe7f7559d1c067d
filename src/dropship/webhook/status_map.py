"""Supplier status vocabulary.

Suppliers report order progress as free text. Only the words below are
understood; anything else is dropped rather than guessed at.
"""

from dropship.dropship_order.dropship_order import DropshipStatus

SUPPLIER_STATUS_MAP = {
    "confirmed": DropshipStatus.CONFIRMED_BY_SUPPLIER,
    "processing": DropshipStatus.PROCESSING,
    "shipped": DropshipStatus.SHIPPED_BY_SUPPLIER,
    "delivered": DropshipStatus.DELIVERED,
    "cancelled": DropshipStatus.CANCELLED,
    "rejected": DropshipStatus.REJECTED_BY_SUPPLIER,
    "on_hold": DropshipStatus.ON_HOLD,
    "pending": DropshipStatus.PENDING,
}


def map_supplier_status(value) -> DropshipStatus | None:
    if not isinstance(value, str):
        return None
    return SUPPLIER_STATUS_MAP.get(value.strip().lower())
