"""Supplier submission — hands a pending dropship order to its supplier.

Runs automatically for every new dropship order and on demand through
``SubmitDropshipOrder``. The outcome is recorded on both the dropship order
and the integration; failures never raise out of the handler, so the
failure note and the integration counter are committed with the order.

Outcomes:
    - supplier returned an order id → confirmed_by_supplier
    - transmitted without an order id → sent_to_supplier
    - configuration problem → on_hold, admins alerted
    - transport failure → note + next retry time for the retry engine, or
      cancellation once the retry cutoff has been reached
"""

from datetime import datetime

import structlog
from protean.fields import Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.backoff import next_retry_at
from dropship.dropship_order.dropship_order import DropshipOrder, DropshipStatus
from dropship.dropship_order.events import DropshipOrderCreated
from dropship.errors import ConfigurationError, TransportError
from dropship.queues import DropshipQueue
from dropship.settings import get_settings
from dropship.supplier.integration import SupplierIntegration
from dropship.supplier.lookups import active_integration_for, find_supplier
from dropship.transport.dispatch import transmit

logger = structlog.get_logger(__name__)


class SubmissionOutcome:
    SKIPPED = "skipped"
    SENT = DropshipStatus.SENT_TO_SUPPLIER.value
    CONFIRMED = DropshipStatus.CONFIRMED_BY_SUPPLIER.value
    ON_HOLD = DropshipStatus.ON_HOLD.value
    FAILED = "failed"
    CANCELLED = DropshipStatus.CANCELLED.value


def submit_to_supplier(dropship_order: DropshipOrder) -> str:
    """Transmit a pending dropship order and record what happened.

    Mutates ``dropship_order`` (the caller persists it) and persists the
    integration's success or failure. Returns a ``SubmissionOutcome`` value.
    """
    log = logger.bind(
        queue=DropshipQueue.SUBMISSION.value,
        dropship_order_id=str(dropship_order.id),
        supplier_id=str(dropship_order.supplier_id),
    )

    if dropship_order.current_status != DropshipStatus.PENDING:
        log.info("Dropship order is not pending, submission skipped", status=dropship_order.status)
        return SubmissionOutcome.SKIPPED

    supplier = find_supplier(dropship_order.supplier_id)
    if supplier is None or not supplier.is_active:
        log.warning("Supplier is not active, submission failed")
        dropship_order.record_submission_failure("Supplier is not active")
        return SubmissionOutcome.FAILED

    integration = active_integration_for(str(supplier.id))
    if integration is None:
        log.error("No active integration for supplier")
        dropship_order.record_configuration_failure("No active integration found for supplier")
        return SubmissionOutcome.ON_HOLD

    log = log.bind(integration_id=str(integration.id), integration_type=integration.integration_type)

    try:
        result = transmit(integration, dropship_order, supplier)
    except ConfigurationError as exc:
        log.error("Supplier integration misconfigured", error=str(exc))
        integration.record_failure(str(exc))
        dropship_order.record_configuration_failure(str(exc), integration_id=str(integration.id))
        outcome = SubmissionOutcome.ON_HOLD
    except TransportError as exc:
        log.warning("Submission to supplier failed", error=str(exc), retry_count=dropship_order.retry_count)
        integration.record_failure(str(exc))
        outcome = _record_failed_attempt(dropship_order, str(exc))
    else:
        _apply_result(dropship_order, result)
        integration.record_success({"order_sent": True, "method": result["method"]})
        outcome = dropship_order.status
        log.info(
            "Dropship order submitted to supplier",
            method=result["method"],
            status=dropship_order.status,
            supplier_order_id=dropship_order.supplier_order_id,
        )

    current_domain.repository_for(SupplierIntegration).add(integration)
    return outcome


def _record_failed_attempt(dropship_order: DropshipOrder, error: str) -> str:
    retry_count = dropship_order.retry_count or 0
    if retry_count >= get_settings().retry_max_attempts:
        dropship_order.record_submission_failure(error)
        dropship_order.fail_permanently(error)
        return SubmissionOutcome.CANCELLED

    dropship_order.record_submission_failure(error, next_retry_at=next_retry_at(retry_count))
    return SubmissionOutcome.FAILED


def _apply_result(dropship_order: DropshipOrder, result: dict) -> None:
    estimated_delivery = _parse_datetime(result.get("estimated_delivery"))
    if estimated_delivery is not None:
        dropship_order.estimated_delivery = estimated_delivery

    if result.get("supplier_order_id"):
        dropship_order.mark_confirmed(
            result["supplier_order_id"],
            response=result,
            expected=DropshipStatus.PENDING,
        )
    else:
        dropship_order.mark_sent(response=result, expected=DropshipStatus.PENDING)


def _parse_datetime(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------
@dropship.command(part_of="DropshipOrder")
class SubmitDropshipOrder:
    dropship_order_id = Identifier(required=True)


@dropship.command_handler(part_of=DropshipOrder)
class SubmitDropshipOrderHandler:
    @handle(SubmitDropshipOrder)
    def submit_dropship_order(self, command: SubmitDropshipOrder) -> str:
        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = repo.get(command.dropship_order_id)
        outcome = submit_to_supplier(dropship_order)
        repo.add(dropship_order)
        return outcome


# ---------------------------------------------------------------------------
# Automatic dispatch of new dropship orders
# ---------------------------------------------------------------------------
@dropship.event_handler(part_of=DropshipOrder)
class SupplierSubmissionDispatcher:
    @handle(DropshipOrderCreated)
    def on_dropship_order_created(self, event: DropshipOrderCreated) -> None:
        repo = current_domain.repository_for(DropshipOrder)
        dropship_order = repo.get(event.dropship_order_id)
        submit_to_supplier(dropship_order)
        repo.add(dropship_order)
