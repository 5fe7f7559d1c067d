"""Supplier aggregate — a third party that fulfills dropship orders.

Only ``active`` suppliers accept new submissions or retries. Status changes
are free-form between non-terminated states; ``terminated`` is final.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, String

from dropship.domain import dropship
from dropship.supplier.events import SupplierRegistered, SupplierStatusChanged


class SupplierStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING_APPROVAL = "pending_approval"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


@dropship.aggregate
class Supplier:
    name = String(required=True, max_length=200)
    email = String(max_length=254)
    status = String(
        max_length=30,
        choices=SupplierStatus,
        default=SupplierStatus.PENDING_APPROVAL.value,
    )
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, name: str, email: str | None = None, status: str = SupplierStatus.PENDING_APPROVAL.value):
        now = datetime.now(UTC)
        supplier = cls(name=name, email=email, status=status, created_at=now, updated_at=now)
        supplier.raise_(
            SupplierRegistered(
                supplier_id=str(supplier.id),
                name=name,
                status=status,
                registered_at=now,
            )
        )
        return supplier

    @property
    def is_active(self) -> bool:
        return self.status == SupplierStatus.ACTIVE.value

    def change_status(self, new_status: str) -> None:
        """Move the supplier to ``new_status``."""
        target = SupplierStatus(new_status)
        current = SupplierStatus(self.status)
        if current == target:
            return
        if current == SupplierStatus.TERMINATED:
            raise ValidationError({"status": ["Terminated suppliers cannot change status"]})

        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            SupplierStatusChanged(
                supplier_id=str(self.id),
                previous_status=current.value,
                new_status=target.value,
                changed_at=now,
            )
        )
