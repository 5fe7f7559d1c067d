"""Dropship reporting — order statistics and supplier performance."""

from collections import Counter
from datetime import UTC, datetime, timedelta

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from dropship.dropship_order.dropship_order import TERMINAL_STATUSES, DropshipOrder, DropshipStatus, as_utc
from dropship.settings import get_settings
from dropship.supplier.lookups import active_integration_for, find_supplier

_FAILED = {DropshipStatus.REJECTED_BY_SUPPLIER.value, DropshipStatus.CANCELLED.value}


def _dropship_orders(supplier_id: str | None = None, since: datetime | None = None) -> list[DropshipOrder]:
    query = current_domain.repository_for(DropshipOrder)._dao.query
    if supplier_id:
        query = query.filter(supplier_id=str(supplier_id))
    orders = query.all().items
    if since is not None:
        orders = [do for do in orders if do.created_at is not None and as_utc(do.created_at) >= since]
    return orders


def _average_fulfillment_hours(orders: list[DropshipOrder]) -> float | None:
    hours = [h for h in (do.processing_hours() for do in orders) if h is not None]
    return round(sum(hours) / len(hours), 1) if hours else None


def dropship_statistics(supplier_id: str | None = None) -> dict:
    """Counts by status, money totals in minor units and average fulfillment time."""
    orders = _dropship_orders(supplier_id)
    by_status = Counter(do.status for do in orders)
    now = datetime.now(UTC)
    overdue_days = get_settings().overdue_days

    total_cost = sum(do.total_cost or 0 for do in orders)
    total_retail = sum(do.total_retail or 0 for do in orders)
    total_profit = sum(do.profit_margin or 0 for do in orders)

    return {
        "supplier_id": supplier_id,
        "totals": {
            "all_orders": len(orders),
            "pending": by_status[DropshipStatus.PENDING.value],
            "active": sum(1 for do in orders if not do.is_terminal and do.status != DropshipStatus.PENDING.value),
            "completed": by_status[DropshipStatus.DELIVERED.value],
            "overdue": sum(1 for do in orders if do.is_overdue(now, overdue_days)),
        },
        "by_status": dict(by_status),
        "total_cost": total_cost,
        "total_retail": total_retail,
        "total_profit": total_profit,
        "profit_margin_percentage": round(total_profit / total_retail * 100, 2) if total_retail else 0.0,
        "avg_fulfillment_hours": _average_fulfillment_hours(orders),
    }


def supplier_performance(supplier_id: str, days: int = 30) -> dict:
    """Success and failure rates over the last ``days`` days, with any issues found."""
    supplier = find_supplier(supplier_id)
    if supplier is None:
        raise ObjectNotFoundError(f"Supplier {supplier_id} does not exist")

    settings = get_settings()
    orders = _dropship_orders(supplier_id, since=datetime.now(UTC) - timedelta(days=days))
    total = len(orders)
    delivered = sum(1 for do in orders if do.status == DropshipStatus.DELIVERED.value)
    failed = sum(1 for do in orders if do.status in _FAILED)
    success_rate = round(delivered / total * 100, 2) if total else 0.0
    failure_rate = round(failed / total * 100, 2) if total else 0.0
    avg_hours = _average_fulfillment_hours(orders)

    issues = []
    if failure_rate > settings.failure_rate_issue_pct:
        issues.append(
            {
                "type": "high_failure_rate",
                "description": (
                    f"Failure rate of {failure_rate}% exceeds {settings.failure_rate_issue_pct:g}% threshold"
                ),
                "severity": "high" if failure_rate > settings.failure_rate_high_pct else "medium",
            }
        )
    if avg_hours is not None and avg_hours > settings.slow_fulfillment_hours:
        issues.append(
            {
                "type": "slow_fulfillment",
                "description": f"Average fulfillment time of {round(avg_hours / 24, 1)} days is too slow",
                "severity": "high" if avg_hours > 2 * settings.slow_fulfillment_hours else "medium",
            }
        )
    integration = active_integration_for(str(supplier.id))
    if integration is not None and not integration.is_healthy(settings.integration_unhealthy_threshold):
        score = integration.health_score()
        issues.append(
            {
                "type": "integration_issues",
                "description": f"Integration health score: {score}",
                "severity": "high" if score < 50 else "medium",
            }
        )

    return {
        "supplier": {"id": str(supplier.id), "name": supplier.name, "status": supplier.status},
        "period_days": days,
        "total_orders": total,
        "successful_orders": delivered,
        "failed_orders": failed,
        "open_orders": sum(1 for do in orders if do.current_status not in TERMINAL_STATUSES),
        "success_rate": success_rate,
        "failure_rate": failure_rate,
        "avg_fulfillment_hours": avg_hours,
        "issues": issues,
    }
