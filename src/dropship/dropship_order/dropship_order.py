"""DropshipOrder aggregate (CQRS) — a supplier-scoped slice of a customer order.

One DropshipOrder exists per (Order, Supplier) pair. It snapshots the
shipping address and per-unit supplier costs at creation; its items never
change afterwards.

State Machine:
    PENDING → SENT_TO_SUPPLIER → CONFIRMED_BY_SUPPLIER → PROCESSING → SHIPPED_BY_SUPPLIER → DELIVERED
    (suppliers may skip forward along that path, never backwards)
    {PENDING, SENT_TO_SUPPLIER, CONFIRMED_BY_SUPPLIER} → REJECTED_BY_SUPPLIER → (retry) → PENDING
    any non-terminal → ON_HOLD → (retry) → PENDING
    any non-terminal → CANCELLED | REFUNDED
    DELIVERED, CANCELLED, REFUNDED are terminal.

Transitions are compare-and-set: callers may pass the status they expect to
find, and a transition to the current status is a no-op.
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
)

from dropship.domain import dropship
from dropship.dropship_order.events import (
    DropshipOrderConfigurationFailed,
    DropshipOrderCreated,
    DropshipOrderPermanentlyFailed,
    DropshipOrderRetryStarted,
    DropshipOrderStatusChanged,
    DropshipOrderSubmissionFailed,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class DropshipStatus(Enum):
    PENDING = "pending"
    SENT_TO_SUPPLIER = "sent_to_supplier"
    CONFIRMED_BY_SUPPLIER = "confirmed_by_supplier"
    PROCESSING = "processing"
    SHIPPED_BY_SUPPLIER = "shipped_by_supplier"
    DELIVERED = "delivered"
    REJECTED_BY_SUPPLIER = "rejected_by_supplier"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_S = DropshipStatus

_VALID_TRANSITIONS = {
    _S.PENDING: {
        _S.SENT_TO_SUPPLIER,
        _S.CONFIRMED_BY_SUPPLIER,
        _S.PROCESSING,
        _S.SHIPPED_BY_SUPPLIER,
        _S.DELIVERED,
        _S.REJECTED_BY_SUPPLIER,
        _S.ON_HOLD,
        _S.CANCELLED,
        _S.REFUNDED,
    },
    _S.SENT_TO_SUPPLIER: {
        _S.CONFIRMED_BY_SUPPLIER,
        _S.PROCESSING,
        _S.SHIPPED_BY_SUPPLIER,
        _S.DELIVERED,
        _S.REJECTED_BY_SUPPLIER,
        _S.ON_HOLD,
        _S.CANCELLED,
        _S.REFUNDED,
    },
    _S.CONFIRMED_BY_SUPPLIER: {
        _S.PROCESSING,
        _S.SHIPPED_BY_SUPPLIER,
        _S.DELIVERED,
        _S.REJECTED_BY_SUPPLIER,
        _S.ON_HOLD,
        _S.CANCELLED,
        _S.REFUNDED,
    },
    _S.PROCESSING: {_S.SHIPPED_BY_SUPPLIER, _S.DELIVERED, _S.ON_HOLD, _S.CANCELLED, _S.REFUNDED},
    _S.SHIPPED_BY_SUPPLIER: {_S.DELIVERED, _S.ON_HOLD, _S.CANCELLED, _S.REFUNDED},
    _S.REJECTED_BY_SUPPLIER: {_S.PENDING, _S.ON_HOLD, _S.CANCELLED, _S.REFUNDED},
    _S.ON_HOLD: {_S.PENDING, _S.CANCELLED, _S.REFUNDED},
    _S.DELIVERED: set(),  # terminal
    _S.CANCELLED: set(),  # terminal
    _S.REFUNDED: set(),  # terminal
}

TERMINAL_STATUSES = frozenset({_S.DELIVERED, _S.CANCELLED, _S.REFUNDED})
RETRY_ELIGIBLE_STATUSES = frozenset({_S.PENDING, _S.REJECTED_BY_SUPPLIER, _S.ON_HOLD})


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@dropship.entity(part_of="DropshipOrder")
class DropshipOrderItem:
    """A line sent to the supplier. Immutable once created."""

    order_item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    supplier_product_id = Identifier(required=True)
    supplier_sku = String(required=True, max_length=100)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_supplier_cost = Integer(required=True, min_value=0)  # minor units
    unit_retail_price = Integer(default=0, min_value=0)  # minor units

    @property
    def total_cost(self) -> int:
        return self.unit_supplier_cost * self.quantity


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@dropship.aggregate
class DropshipOrder:
    order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    supplier_order_id = String(max_length=255)
    status = String(max_length=30, choices=DropshipStatus, default=DropshipStatus.PENDING.value)
    items = HasMany(DropshipOrderItem)

    customer_name = String(max_length=200)
    customer_email = String(max_length=254)
    shipping_address = Text()  # JSON snapshot
    currency = String(max_length=3, default="GBP")
    total_cost = Integer(default=0)
    total_retail = Integer(default=0)
    profit_margin = Integer(default=0)

    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    estimated_delivery = DateTime()

    sent_to_supplier_at = DateTime()
    confirmed_at = DateTime()
    shipped_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()

    supplier_response = Text()  # JSON
    webhook_data = Text()  # JSON of the last inbound payload
    notes = Text()
    supplier_notes = Text()

    retry_count = Integer(default=0, min_value=0)
    auto_retry_enabled = Boolean(default=True)
    last_retry_at = DateTime()
    next_retry_at = DateTime()
    follow_up_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        supplier_id: str,
        items_data: list[dict],
        shipping_address: dict | None,
        customer_name: str | None = None,
        customer_email: str | None = None,
        currency: str = "GBP",
    ):
        """Create a dropship order for one supplier's share of a paid order."""
        if not items_data:
            raise ValidationError({"items": ["A dropship order needs at least one item"]})

        now = datetime.now(UTC)
        total_cost = sum(i["unit_supplier_cost"] * i["quantity"] for i in items_data)
        total_retail = sum(i.get("unit_retail_price", 0) * i["quantity"] for i in items_data)
        if total_retail and total_retail < total_cost:
            raise ValidationError({"profit_margin": ["Supplier cost exceeds retail value for this supplier"]})

        do = cls(
            order_id=order_id,
            supplier_id=supplier_id,
            status=DropshipStatus.PENDING.value,
            customer_name=customer_name,
            customer_email=customer_email,
            shipping_address=json.dumps(shipping_address) if shipping_address else None,
            currency=currency,
            total_cost=total_cost,
            total_retail=total_retail,
            profit_margin=total_retail - total_cost,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            do.add_items(DropshipOrderItem(**item_data))
        do.raise_(
            DropshipOrderCreated(
                dropship_order_id=str(do.id),
                order_id=order_id,
                supplier_id=supplier_id,
                items=json.dumps(items_data),
                total_cost=total_cost,
                total_retail=total_retail,
                created_at=now,
            )
        )
        return do

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> DropshipStatus:
        return DropshipStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    @property
    def address(self) -> dict | None:
        return json.loads(self.shipping_address) if self.shipping_address else None

    def can_transition_to(self, target: DropshipStatus) -> bool:
        return target in _VALID_TRANSITIONS[self.current_status]

    def can_retry(self, max_attempts: int) -> bool:
        return (
            bool(self.auto_retry_enabled)
            and (self.retry_count or 0) < max_attempts
            and self.current_status in RETRY_ELIGIBLE_STATUSES
        )

    def processing_hours(self) -> float | None:
        """Hours between submission and supplier shipment."""
        if not self.sent_to_supplier_at or not self.shipped_at:
            return None
        return (self.shipped_at - self.sent_to_supplier_at).total_seconds() / 3600

    def is_overdue(self, as_of: datetime, days: int) -> bool:
        """Past the estimated delivery (or, without one, past submission) by ``days``."""
        if self.is_terminal:
            return False
        cutoff = as_of - timedelta(days=days)
        if self.estimated_delivery is not None:
            return as_utc(self.estimated_delivery) < cutoff
        return self.sent_to_supplier_at is not None and as_utc(self.sent_to_supplier_at) < cutoff

    # -------------------------------------------------------------------
    # State transition
    # -------------------------------------------------------------------
    def transition_to(
        self,
        target: DropshipStatus,
        expected: DropshipStatus | None = None,
        reason: str | None = None,
    ) -> bool:
        """Move to ``target``. Returns False if already there.

        ``expected`` turns the call into a compare-and-set: the transition
        only happens if the order is still in the expected status.
        """
        current = self.current_status
        if expected is not None and current != expected:
            raise InvalidOperationError(
                f"Dropship order {self.id} is {current.value}, expected {expected.value}"
            )
        if current == target:
            return False
        if current in TERMINAL_STATUSES:
            raise ValidationError({"status": [f"Dropship order is {current.value} and can no longer change"]})
        if target not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.status = target.value
        self._stamp_milestone(target, now)
        self.updated_at = now
        self.raise_(
            DropshipOrderStatusChanged(
                dropship_order_id=str(self.id),
                order_id=str(self.order_id),
                supplier_id=str(self.supplier_id),
                previous_status=current.value,
                new_status=target.value,
                reason=reason,
                tracking_number=self.tracking_number,
                carrier=self.carrier,
                changed_at=now,
            )
        )
        return True

    def _stamp_milestone(self, target: DropshipStatus, now: datetime) -> None:
        if target == DropshipStatus.SENT_TO_SUPPLIER:
            self.sent_to_supplier_at = now
        elif target == DropshipStatus.CONFIRMED_BY_SUPPLIER:
            self.confirmed_at = now
            if self.sent_to_supplier_at is None:
                self.sent_to_supplier_at = now
        elif target == DropshipStatus.SHIPPED_BY_SUPPLIER:
            self.shipped_at = now
        elif target == DropshipStatus.DELIVERED:
            self.delivered_at = now
        elif target in (DropshipStatus.CANCELLED, DropshipStatus.REFUNDED):
            self.cancelled_at = now

    # -------------------------------------------------------------------
    # Supplier milestones
    # -------------------------------------------------------------------
    def mark_sent(self, response: dict | None = None, expected: DropshipStatus | None = None) -> bool:
        if response is not None:
            self.supplier_response = json.dumps(response)
        return self.transition_to(DropshipStatus.SENT_TO_SUPPLIER, expected=expected)

    def mark_confirmed(
        self,
        supplier_order_id: str | None,
        response: dict | None = None,
        expected: DropshipStatus | None = None,
    ) -> bool:
        if supplier_order_id:
            self.supplier_order_id = str(supplier_order_id)
        if response is not None:
            self.supplier_response = json.dumps(response)
        return self.transition_to(DropshipStatus.CONFIRMED_BY_SUPPLIER, expected=expected)

    def mark_processing(self) -> bool:
        return self.transition_to(DropshipStatus.PROCESSING)

    def mark_shipped(
        self,
        tracking_number: str,
        carrier: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> bool:
        if not tracking_number:
            raise ValidationError({"tracking_number": ["A tracking number is required to mark an order shipped"]})
        if self.can_transition_to(DropshipStatus.SHIPPED_BY_SUPPLIER):
            self.tracking_number = tracking_number
            self.carrier = carrier or self.carrier
            self.estimated_delivery = estimated_delivery or self.estimated_delivery
        return self.transition_to(DropshipStatus.SHIPPED_BY_SUPPLIER)

    def mark_delivered(self) -> bool:
        return self.transition_to(DropshipStatus.DELIVERED)

    def reject(self, reason: str | None = None) -> bool:
        if reason and not self.is_terminal:
            self.supplier_notes = reason
        return self.transition_to(DropshipStatus.REJECTED_BY_SUPPLIER, reason=reason)

    def hold(self, reason: str) -> bool:
        changed = self.transition_to(DropshipStatus.ON_HOLD, reason=reason)
        if changed:
            self.add_note(f"On hold: {reason}")
        return changed

    def cancel(self, reason: str | None = None) -> bool:
        changed = self.transition_to(DropshipStatus.CANCELLED, reason=reason)
        if changed and reason:
            self.add_note(f"Cancelled: {reason}")
        return changed

    def refund(self, reason: str | None = None) -> bool:
        return self.transition_to(DropshipStatus.REFUNDED, reason=reason)

    # -------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------
    def add_note(self, text: str) -> None:
        stamp = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] {text}"
        self.notes = f"{self.notes}\n{line}" if self.notes else line
        self.updated_at = datetime.now(UTC)

    def record_webhook(self, payload: dict) -> None:
        self.webhook_data = json.dumps(payload)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Submission & retry bookkeeping
    # -------------------------------------------------------------------
    def record_submission_failure(self, error: str, next_retry_at: datetime | None = None) -> None:
        """Note a failed transmission. Recovery is left to the retry engine."""
        now = datetime.now(UTC)
        self.add_note(f"Failed to send to supplier: {error}")
        self.next_retry_at = next_retry_at
        self.raise_(
            DropshipOrderSubmissionFailed(
                dropship_order_id=str(self.id),
                supplier_id=str(self.supplier_id),
                error=error,
                retry_count=self.retry_count or 0,
                next_retry_at=next_retry_at,
                failed_at=now,
            )
        )

    def record_configuration_failure(self, error: str, integration_id: str | None = None) -> None:
        """Park the order on hold until an admin fixes the integration."""
        now = datetime.now(UTC)
        self.add_note(f"Configuration error: {error}")
        if not self.is_terminal and self.current_status != DropshipStatus.ON_HOLD:
            self.transition_to(DropshipStatus.ON_HOLD, reason=f"Configuration error: {error}")
        self.raise_(
            DropshipOrderConfigurationFailed(
                dropship_order_id=str(self.id),
                supplier_id=str(self.supplier_id),
                integration_id=integration_id,
                error=error,
                failed_at=now,
            )
        )

    def begin_retry(self, reason: str, follow_up_at: datetime | None = None) -> None:
        """Count a retry attempt and return the order to ``pending``."""
        now = datetime.now(UTC)
        self.retry_count = (self.retry_count or 0) + 1
        self.last_retry_at = now
        self.next_retry_at = None
        self.follow_up_at = follow_up_at
        if self.current_status in (DropshipStatus.REJECTED_BY_SUPPLIER, DropshipStatus.ON_HOLD):
            self.transition_to(DropshipStatus.PENDING, reason=f"Retry #{self.retry_count}")
        self.add_note(
            f"Retry #{self.retry_count} initiated on {now.strftime('%Y-%m-%d %H:%M:%S')} (Reason: {reason})"
        )
        self.raise_(
            DropshipOrderRetryStarted(
                dropship_order_id=str(self.id),
                retry_count=self.retry_count,
                reason=reason,
                started_at=now,
            )
        )

    def schedule_retry(self, at: datetime) -> None:
        self.next_retry_at = at
        self.updated_at = datetime.now(UTC)

    def fail_permanently(self, reason: str) -> None:
        """Cancel after retries are exhausted and tell admins."""
        now = datetime.now(UTC)
        message = f"Maximum retry attempts exceeded: {reason}"
        self.auto_retry_enabled = False
        self.next_retry_at = None
        if not self.is_terminal:
            self.cancel(message)
        self.raise_(
            DropshipOrderPermanentlyFailed(
                dropship_order_id=str(self.id),
                order_id=str(self.order_id),
                supplier_id=str(self.supplier_id),
                reason=message,
                retry_count=self.retry_count or 0,
                failed_at=now,
            )
        )


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
