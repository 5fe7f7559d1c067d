"""Integration health: failure bookkeeping and the periodic health check."""

import structlog
from protean.fields import Boolean
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.dropship_order.alerts import notify_admins
from dropship.settings import get_settings
from dropship.supplier.integration import SupplierIntegration
from dropship.supplier.lookups import find_supplier

logger = structlog.get_logger(__name__)


def record_integration_failure(integration_id: str, error: str) -> None:
    """Count a failure outside the unit of work that failed, so it survives the rollback."""
    repo = current_domain.repository_for(SupplierIntegration)
    integration = repo.get(integration_id)
    integration.record_failure(error)
    repo.add(integration)


def integration_health(integration: SupplierIntegration, unhealthy_threshold: int) -> dict:
    return {
        "integration_id": str(integration.id),
        "supplier_id": str(integration.supplier_id),
        "integration_type": integration.integration_type,
        "is_active": bool(integration.is_active),
        "is_healthy": integration.is_healthy(unhealthy_threshold),
        "health_score": integration.health_score(),
        "consecutive_failures": integration.consecutive_failures or 0,
        "last_error": integration.last_error,
    }


@dropship.command(part_of="SupplierIntegration")
class CheckIntegrationHealth:
    alert = Boolean(default=True)


@dropship.command_handler(part_of=SupplierIntegration)
class CheckIntegrationHealthHandler:
    @handle(CheckIntegrationHealth)
    def check_health(self, command: CheckIntegrationHealth) -> dict:
        threshold = get_settings().integration_unhealthy_threshold
        integrations = current_domain.repository_for(SupplierIntegration)._dao.query.all().items
        reports = [integration_health(i, threshold) for i in integrations]
        unhealthy = [r for r in reports if not r["is_healthy"]]

        if unhealthy:
            logger.warning("Unhealthy supplier integrations found", count=len(unhealthy))
            if command.alert:
                lines = []
                for report in unhealthy:
                    supplier = find_supplier(report["supplier_id"])
                    name = supplier.name if supplier else report["supplier_id"]
                    lines.append(
                        f"- {name} ({report['integration_type']}): score {report['health_score']}, "
                        f"{report['consecutive_failures']} consecutive failures, last error: {report['last_error']}"
                    )
                notify_admins(
                    subject=f"{len(unhealthy)} supplier integration(s) unhealthy",
                    body="The following supplier integrations need attention:\n\n" + "\n".join(lines),
                )

        return {
            "checked": len(reports),
            "healthy": len(reports) - len(unhealthy),
            "unhealthy": unhealthy,
        }
