"""Overdue dropship order processing.

An order is overdue when it is not terminal and its estimated delivery
(or, without an estimate, its submission) is more than ``days`` old.
Each overdue order gets one action: notify, retry, cancel or escalate.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.alerts import notify_admins
from dropship.dropship_order.dropship_order import TERMINAL_STATUSES, DropshipOrder, as_utc
from dropship.dropship_order.retry import RetryOutcome, retry_dropship_order
from dropship.settings import get_settings
from dropship.supplier.lookups import find_supplier
from dropship.transport import get_email_adapter

logger = structlog.get_logger(__name__)

# Expected transit time once an order without an estimate has been sent
DEFAULT_PROCESSING_DAYS = 7


class OverdueAction(Enum):
    NOTIFY = "notify"
    RETRY = "retry"
    CANCEL = "cancel"
    ESCALATE = "escalate"


def overdue_orders(days: int, supplier_id: str | None = None, limit: int = 100, as_of: datetime | None = None):
    as_of = as_of or datetime.now(UTC)
    repo = current_domain.repository_for(DropshipOrder)
    criteria = {"supplier_id": supplier_id} if supplier_id else {}
    candidates = repo._dao.query.filter(**criteria).all().items if criteria else repo._dao.query.all().items

    overdue = [
        do for do in candidates if do.current_status not in TERMINAL_STATUSES and do.is_overdue(as_of, days)
    ]
    overdue.sort(key=lambda do: as_utc(do.created_at))
    return overdue[:limit]


def days_past_due(dropship_order: DropshipOrder, as_of: datetime | None = None) -> int:
    as_of = as_of or datetime.now(UTC)
    if dropship_order.estimated_delivery is not None:
        expected = as_utc(dropship_order.estimated_delivery)
    elif dropship_order.sent_to_supplier_at is not None:
        expected = as_utc(dropship_order.sent_to_supplier_at) + timedelta(days=DEFAULT_PROCESSING_DAYS)
    else:
        return 0
    return max(0, (as_of - expected).days)


def _notify(dropship_order: DropshipOrder, late_by: int) -> None:
    supplier = find_supplier(dropship_order.supplier_id)
    if supplier is not None and supplier.email:
        get_email_adapter().send(
            to=supplier.email,
            subject=f"Order {dropship_order.id} is overdue",
            body=(
                f"Our order {dropship_order.id} (your reference {dropship_order.supplier_order_id or 'n/a'}) "
                f"is {late_by} days past its expected delivery. Please send us an update."
            ),
        )
    notify_admins(
        subject=f"Overdue dropship order {dropship_order.id}",
        body=f"Dropship order {dropship_order.id} is {late_by} days overdue (status {dropship_order.status}).",
    )


def _escalate(dropship_order: DropshipOrder, late_by: int) -> None:
    logger.critical(
        "Severely overdue dropship order escalated",
        dropship_order_id=str(dropship_order.id),
        order_id=str(dropship_order.order_id),
        supplier_id=str(dropship_order.supplier_id),
        days_past_due=late_by,
    )
    notify_admins(
        subject=f"ESCALATION: dropship order {dropship_order.id}",
        body=(
            f"Dropship order {dropship_order.id} for order {dropship_order.order_id} is {late_by} days overdue "
            f"and needs immediate attention."
        ),
    )
    dropship_order.add_note(f"Escalated due to being overdue by {late_by} days")


def process_overdue_order(dropship_order: DropshipOrder, action: OverdueAction) -> str:
    """Apply ``action``. Returns the stats key to count it under."""
    late_by = days_past_due(dropship_order)

    if action == OverdueAction.NOTIFY:
        _notify(dropship_order, late_by)
        return "notifications_sent"
    elif action == OverdueAction.RETRY:
        result = retry_dropship_order(dropship_order, f"Overdue by {late_by} days")
        if result["outcome"] != RetryOutcome.RESUBMITTED:
            raise ValidationError({"retry": result["problems"] or ["Order cannot be retried"]})
        return "orders_retried"
    elif action == OverdueAction.CANCEL:
        dropship_order.cancel(f"Automatically cancelled - overdue by {late_by} days")
        return "orders_cancelled"
    else:
        _escalate(dropship_order, late_by)
        return "orders_escalated"


@dropship.command(part_of="DropshipOrder")
class ProcessOverdueDropshipOrders:
    days = Integer(min_value=1)
    action = String(max_length=20, choices=OverdueAction, default=OverdueAction.NOTIFY.value)
    supplier_id = Identifier()
    limit = Integer(default=100, min_value=1)
    dry_run = Boolean(default=False)


@dropship.command_handler(part_of=DropshipOrder)
class ProcessOverdueDropshipOrdersHandler:
    @handle(ProcessOverdueDropshipOrders)
    def process_overdue(self, command: ProcessOverdueDropshipOrders) -> dict:
        action = OverdueAction(command.action)
        days = command.days or get_settings().overdue_days
        orders = overdue_orders(days, command.supplier_id, command.limit)
        repo = current_domain.repository_for(DropshipOrder)

        stats = {
            "total_orders": len(orders),
            "processed_successfully": 0,
            "failed_processing": 0,
            "notifications_sent": 0,
            "orders_retried": 0,
            "orders_cancelled": 0,
            "orders_escalated": 0,
            "dry_run": bool(command.dry_run),
            "errors": [],
        }

        for dropship_order in orders:
            if command.dry_run:
                stats["processed_successfully"] += 1
                continue
            try:
                counter = process_overdue_order(dropship_order, action)
            except (ValidationError, InvalidOperationError) as exc:
                stats["failed_processing"] += 1
                stats["errors"].append(f"Order {dropship_order.id}: {exc}")
                logger.warning(
                    "Overdue order could not be processed",
                    dropship_order_id=str(dropship_order.id),
                    error=str(exc),
                )
                continue
            repo.add(dropship_order)
            stats["processed_successfully"] += 1
            stats[counter] += 1

        logger.info(
            "Overdue dropship orders processed",
            action=action.value,
            days=days,
            processed=stats["processed_successfully"],
            failed=stats["failed_processing"],
        )
        return stats
