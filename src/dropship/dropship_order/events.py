"""DropshipOrder events — immutable facts about supplier sub-orders.

``DropshipOrderStatusChanged`` is raised on every effective status
transition. The status aggregator, inventory effects and admin alerts all
consume it; none of those side effects live inside the transition itself.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from dropship.domain import dropship


@dropship.event(part_of="DropshipOrder")
class DropshipOrderCreated:
    """A dropship order was split off a paid customer order."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    total_cost = Integer(required=True)
    total_retail = Integer(required=True)
    created_at = DateTime(required=True)


@dropship.event(part_of="DropshipOrder")
class DropshipOrderStatusChanged:
    """The dropship order moved from one status to another."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    reason = Text()
    tracking_number = String()
    carrier = String()
    changed_at = DateTime(required=True)


@dropship.event(part_of="DropshipOrder")
class DropshipOrderSubmissionFailed:
    """A transport could not deliver the dropship order to its supplier."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    error = Text(required=True)
    retry_count = Integer(required=True)
    next_retry_at = DateTime()
    failed_at = DateTime(required=True)


@dropship.event(part_of="DropshipOrder")
class DropshipOrderRetryStarted:
    """A retry attempt passed pre-flight validation and is being resubmitted."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    retry_count = Integer(required=True)
    reason = String()
    started_at = DateTime(required=True)


@dropship.event(part_of="DropshipOrder")
class DropshipOrderPermanentlyFailed:
    """Retries were exhausted or configuration is broken; admins must act."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    reason = Text(required=True)
    retry_count = Integer(required=True)
    failed_at = DateTime(required=True)


@dropship.event(part_of="DropshipOrder")
class DropshipOrderConfigurationFailed:
    """The supplier integration is misconfigured; the order is on hold until fixed."""

    __version__ = 1

    dropship_order_id = Identifier(required=True)
    supplier_id = Identifier(required=True)
    integration_id = Identifier()
    error = Text(required=True)
    failed_at = DateTime(required=True)
