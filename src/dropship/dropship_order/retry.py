"""Retry and recovery engine for dropship orders that did not reach their supplier.

A retry is attempted only when the order is below the retry cutoff, in a
retry-eligible status (pending, rejected_by_supplier, on_hold) and its
supplier is active. It then has to pass pre-flight validation:

- the supplier has an active integration that is not failing repeatedly
- every line's supplier SKU is still offered and has enough stock
- the order is intact: lines present, positive total, shipping address,
  parent order neither cancelled nor refunded

A passing retry is counted, the order goes back to pending and is resubmitted.
A failing pre-flight leaves an itemized note and a new retry time; the
order is not resubmitted until the underlying condition changes.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.backoff import next_retry_at
from dropship.dropship_order.dropship_order import (
    RETRY_ELIGIBLE_STATUSES,
    DropshipOrder,
    DropshipStatus,
    as_utc,
)
from dropship.dropship_order.submission import submit_to_supplier
from dropship.errors import PreflightValidationError
from dropship.order.order import Order
from dropship.queues import DropshipQueue
from dropship.settings import get_settings
from dropship.supplier.lookups import (
    active_integration_for,
    find_supplier,
    find_supplier_product_by_id,
    other_suppliers_carrying,
)
from dropship.supplier.supplier import Supplier

logger = structlog.get_logger(__name__)


class RetryOutcome:
    RESUBMITTED = "resubmitted"
    REJECTED = "rejected"
    PREFLIGHT_FAILED = "preflight_failed"


def retry_blocker(dropship_order: DropshipOrder, supplier: Supplier | None) -> str | None:
    """Why the order may not be retried at all, or None."""
    if (dropship_order.retry_count or 0) >= get_settings().retry_max_attempts:
        return "Maximum retry attempts reached"
    if dropship_order.current_status not in RETRY_ELIGIBLE_STATUSES:
        return f"Status {dropship_order.status} is not retryable"
    if supplier is None or not supplier.is_active:
        return "Supplier is not active"
    return None


def validate_preflight(dropship_order: DropshipOrder) -> None:
    """Raise ``PreflightValidationError`` listing every failed check."""
    settings = get_settings()
    problems = []

    integration = active_integration_for(str(dropship_order.supplier_id))
    if integration is None:
        problems.append("Supplier has no active integration")
    elif (integration.consecutive_failures or 0) >= settings.integration_failure_threshold:
        problems.append(f"Supplier integration has failed {integration.consecutive_failures} times in a row")

    for item in dropship_order.items:
        supplier_product = find_supplier_product_by_id(item.supplier_product_id)
        if supplier_product is None:
            problems.append(f"{item.supplier_sku}: supplier product no longer exists")
        elif not supplier_product.is_active:
            problems.append(f"{item.supplier_sku}: discontinued by supplier")
        elif (supplier_product.stock_quantity or 0) < item.quantity:
            problems.append(
                f"{item.supplier_sku}: insufficient stock "
                f"(requested {item.quantity}, available {supplier_product.stock_quantity or 0})"
            )

    if not dropship_order.items:
        problems.append("Dropship order has no items")
    if (dropship_order.total_cost or 0) <= 0:
        problems.append("Dropship order total must be positive")
    if not dropship_order.shipping_address:
        problems.append("Shipping address is missing")

    try:
        order = current_domain.repository_for(Order).get(dropship_order.order_id)
    except ObjectNotFoundError:
        problems.append("Parent order not found")
    else:
        if order.is_closed:
            problems.append(f"Parent order is {order.status}")

    if problems:
        raise PreflightValidationError(problems)


def alternative_suppliers(dropship_order: DropshipOrder) -> dict[str, list[str]]:
    """Other active suppliers that could fulfil each line. Informational only."""
    alternatives = {}
    for item in dropship_order.items:
        candidates = other_suppliers_carrying(item.supplier_sku, str(dropship_order.supplier_id), item.quantity)
        supplier_ids = []
        for candidate in candidates:
            supplier = find_supplier(candidate.supplier_id)
            if supplier is not None and supplier.is_active:
                supplier_ids.append(str(supplier.id))
        if supplier_ids:
            alternatives[item.supplier_sku] = supplier_ids
    return alternatives


def retry_dropship_order(dropship_order: DropshipOrder, reason: str) -> dict:
    """Run one retry attempt. The caller persists ``dropship_order``."""
    log = logger.bind(
        queue=DropshipQueue.RETRY.value,
        dropship_order_id=str(dropship_order.id),
        retry_count=dropship_order.retry_count or 0,
    )
    result = {"dropship_order_id": str(dropship_order.id), "problems": [], "alternatives": {}}

    blocker = retry_blocker(dropship_order, find_supplier(dropship_order.supplier_id))
    if blocker is not None:
        log.info("Retry rejected", reason=blocker)
        return {**result, "outcome": RetryOutcome.REJECTED, "problems": [blocker], "status": dropship_order.status}

    try:
        validate_preflight(dropship_order)
    except PreflightValidationError as exc:
        log.warning("Retry pre-flight validation failed", problems=exc.problems)
        dropship_order.add_note(f"Retry pre-flight failed: {exc}")
        dropship_order.schedule_retry(next_retry_at(dropship_order.retry_count or 0))
        return {
            **result,
            "outcome": RetryOutcome.PREFLIGHT_FAILED,
            "problems": exc.problems,
            "status": dropship_order.status,
        }

    alternatives = alternative_suppliers(dropship_order)
    if alternatives:
        log.info("Alternative suppliers available", alternatives=alternatives)

    follow_up = datetime.now(UTC) + timedelta(seconds=get_settings().retry_follow_up_seconds)
    dropship_order.begin_retry(reason, follow_up_at=follow_up)
    submission = submit_to_supplier(dropship_order)
    log.info("Dropship order resubmitted", submission=submission, status=dropship_order.status)
    return {
        **result,
        "outcome": RetryOutcome.RESUBMITTED,
        "alternatives": alternatives,
        "submission": submission,
        "status": dropship_order.status,
    }


def due_for_retry(as_of: datetime | None = None, limit: int = 50) -> list[DropshipOrder]:
    """Auto-retry orders whose scheduled retry time has passed, oldest first."""
    as_of = as_of or datetime.now(UTC)
    max_attempts = get_settings().retry_max_attempts
    repo = current_domain.repository_for(DropshipOrder)

    candidates = []
    for status in RETRY_ELIGIBLE_STATUSES:
        candidates.extend(repo._dao.query.filter(status=status.value, auto_retry_enabled=True).all().items)

    due = [
        do
        for do in candidates
        if do.next_retry_at is not None
        and as_utc(do.next_retry_at) <= as_of
        and (do.retry_count or 0) < max_attempts
    ]
    due.sort(key=lambda do: as_utc(do.next_retry_at))
    return due[:limit]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@dropship.command(part_of="DropshipOrder")
class RetryDropshipOrder:
    dropship_order_id = Identifier(required=True)
    reason = String(max_length=500, default="Manual retry")


@dropship.command(part_of="DropshipOrder")
class ProcessRetryQueue:
    limit = Integer(default=50, min_value=1)


@dropship.command_handler(part_of=DropshipOrder)
class RetryHandler:
    @handle(RetryDropshipOrder)
    def retry(self, command: RetryDropshipOrder) -> dict:
        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = repo.get(command.dropship_order_id)
        result = retry_dropship_order(dropship_order, command.reason)
        repo.add(dropship_order)
        return result

    @handle(ProcessRetryQueue)
    def process_queue(self, command: ProcessRetryQueue) -> dict:
        repo = current_domain.repository_for(DropshipOrder)
        stats = {
            "processed": 0,
            RetryOutcome.RESUBMITTED: 0,
            RetryOutcome.REJECTED: 0,
            RetryOutcome.PREFLIGHT_FAILED: 0,
        }

        for dropship_order in due_for_retry(limit=command.limit):
            reason = "Scheduled retry"
            if dropship_order.current_status == DropshipStatus.REJECTED_BY_SUPPLIER:
                reason = "Scheduled retry after supplier rejection"
            result = retry_dropship_order(dropship_order, reason)
            repo.add(dropship_order)
            stats["processed"] += 1
            stats[result["outcome"]] += 1

        logger.info("Retry queue processed", queue=DropshipQueue.RETRY.value, **stats)
        return stats
