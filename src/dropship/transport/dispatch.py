"""Transport selection: one dropship order, one integration, one variant."""

from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.errors import ConfigurationError
from dropship.supplier.integration import IntegrationType, SupplierIntegration
from dropship.supplier.supplier import Supplier
from dropship.transport import api, ftp, mail, webhook


def transmit(integration: SupplierIntegration, dropship_order: DropshipOrder, supplier: Supplier | None = None) -> dict:
    """Send ``dropship_order`` over ``integration``.

    Returns a result dict with ``method``, ``supplier_order_id``,
    ``estimated_delivery`` and ``response``. Raises ``ConfigurationError``
    or a ``TransportError`` subclass on failure.
    """
    kind = integration.kind

    if kind == IntegrationType.API:
        return api.submit_order(integration, dropship_order)
    elif kind == IntegrationType.WEBHOOK:
        return webhook.submit_order(integration, dropship_order)
    elif kind == IntegrationType.FTP:
        return ftp.submit_order(integration, dropship_order)
    elif kind == IntegrationType.EMAIL:
        return mail.submit_order(integration.email_address, dropship_order, integration)
    elif kind in (IntegrationType.MANUAL, IntegrationType.CSV_UPLOAD):
        # Processed by hand; the supplier's contact address gets the order sheet
        contact = integration.email_address or (supplier.email if supplier else None)
        return mail.submit_order(contact, dropship_order, integration)
    else:
        raise ConfigurationError(f"Unsupported integration type: {integration.integration_type}")
