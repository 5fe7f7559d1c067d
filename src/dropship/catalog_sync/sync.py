"""Supplier catalog sync — reconciles local SupplierProducts with a supplier feed.

The feed is pulled over the supplier's api (paged ``/products``) or ftp
(latest ``.csv`` in the download directory) integration. Reconciliation runs
in the command's unit of work, so a crash never leaves a half-applied batch:

- unseen SKUs are created
- known SKUs are updated only where price, stock or name differ; price and
  stock changes raise events that the pricing handlers propagate
- known SKUs missing from a full feed are discontinued

A record that cannot be applied is reported in ``errors`` and skipped. An
empty feed changes nothing.
"""

import structlog
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from dropship.domain import dropship
from dropship.errors import ConfigurationError, SyncNotSupported, TransportError
from dropship.queues import DropshipQueue
from dropship.supplier.health import record_integration_failure
from dropship.supplier.integration import IntegrationType, SupplierIntegration
from dropship.supplier.lookups import active_integration_for, supplier_products_for
from dropship.supplier.supplier import Supplier
from dropship.supplier.supplier_product import SupplierProduct
from dropship.transport import api, ftp
from dropship.transport.payload import to_minor_units

logger = structlog.get_logger(__name__)

SYNCABLE_TYPES = frozenset({IntegrationType.API, IntegrationType.FTP})

_INACTIVE_FLAGS = {"0", "false", "no", "inactive", "discontinued"}


def fetch_catalog(integration: SupplierIntegration, full: bool = True) -> list[dict]:
    if integration.kind == IntegrationType.API:
        return api.fetch_products(integration, include_inactive=full)
    elif integration.kind == IntegrationType.FTP:
        return ftp.fetch_products(integration)
    raise SyncNotSupported(f"Sync not supported for integration type: {integration.integration_type}")


def _record_sku(record: dict) -> str | None:
    sku = record.get("sku") or record.get("supplier_sku")
    return str(sku).strip() if sku not in (None, "") else None


def _record_stock(record: dict) -> int | None:
    for key in ("stock", "stock_quantity", "quantity"):
        if record.get(key) not in (None, ""):
            return int(float(record[key]))
    return None


def _record_price(record: dict) -> int | None:
    if record.get("price") in (None, ""):
        return None
    return to_minor_units(record["price"])


def _record_is_active(record: dict) -> bool:
    flag = record.get("is_active", record.get("status"))
    if flag is None:
        return True
    return str(flag).strip().lower() not in _INACTIVE_FLAGS


def empty_stats() -> dict:
    return {
        "found": 0,
        "created": 0,
        "updated": 0,
        "deactivated": 0,
        "stock_updates": 0,
        "price_updates": 0,
        "errors": [],
    }


def _update_existing(supplier_product: SupplierProduct, record: dict, stats: dict) -> bool:
    # Parse the whole record first so a malformed field leaves the product untouched
    price = _record_price(record)
    stock = _record_stock(record)
    name = record.get("name") or record.get("product_name")
    active = _record_is_active(record)

    changed = False
    if price is not None and supplier_product.update_price(price):
        stats["price_updates"] += 1
        changed = True

    if stock is not None and supplier_product.update_stock(stock):
        stats["stock_updates"] += 1
        changed = True

    if name and supplier_product.rename(str(name)):
        changed = True

    if active:
        if not supplier_product.is_active:
            supplier_product.reactivate()
            changed = True
    elif supplier_product.is_active:
        supplier_product.discontinue()
        changed = True

    return changed


def reconcile_catalog(supplier_id: str, records: list[dict], deactivate_missing: bool = True) -> dict:
    """Apply a supplier feed to the local catalog. Returns the sync statistics."""
    stats = empty_stats()
    stats["found"] = len(records)
    if not records:
        return stats

    repo = current_domain.repository_for(SupplierProduct)
    existing = {sp.supplier_sku: sp for sp in supplier_products_for(supplier_id)}
    seen = set()

    for record in records:
        sku = _record_sku(record)
        if sku is None:
            stats["errors"].append("Missing SKU in product data")
            continue
        seen.add(sku)

        try:
            supplier_product = existing.get(sku)
            if supplier_product is None:
                supplier_product = SupplierProduct.register(
                    supplier_id=supplier_id,
                    supplier_sku=sku,
                    name=record.get("name") or record.get("product_name") or "Unnamed Product",
                    price=_record_price(record) or 0,
                    stock_quantity=_record_stock(record) or 0,
                )
                if record.get("description"):
                    supplier_product.description = record["description"]
                repo.add(supplier_product)
                existing[sku] = supplier_product
                stats["created"] += 1
            elif _update_existing(supplier_product, record, stats):
                repo.add(supplier_product)
                stats["updated"] += 1
        except (ValidationError, ValueError, TypeError) as exc:
            stats["errors"].append(f"Error processing product {sku}: {exc}")
            logger.warning("Error processing catalog record", sku=sku, error=str(exc))

    if deactivate_missing:
        for sku, supplier_product in existing.items():
            if sku not in seen and supplier_product.is_active:
                supplier_product.discontinue()
                repo.add(supplier_product)
                stats["deactivated"] += 1

    return stats


@dropship.command(part_of="SupplierProduct")
class SyncSupplierCatalog:
    supplier_id = Identifier(required=True)
    full = Boolean(default=True)


@dropship.command_handler(part_of=SupplierProduct)
class SyncSupplierCatalogHandler:
    @handle(SyncSupplierCatalog)
    def sync_catalog(self, command: SyncSupplierCatalog) -> dict:
        supplier = current_domain.repository_for(Supplier).get(command.supplier_id)
        if not supplier.is_active:
            raise ValidationError({"supplier_id": ["Supplier is not active"]})

        integration = active_integration_for(str(supplier.id))
        if integration is None or integration.kind not in SYNCABLE_TYPES:
            raise SyncNotSupported("No active api or ftp integration found for supplier")

        log = logger.bind(
            queue=DropshipQueue.SYNC.value,
            supplier_id=str(supplier.id),
            integration_id=str(integration.id),
            integration_type=integration.integration_type,
        )

        records = fetch_catalog(integration, full=command.full)
        if not records:
            log.warning("Supplier feed returned no products")
        stats = reconcile_catalog(str(supplier.id), records, deactivate_missing=bool(command.full))

        integration.record_success(
            {
                "sync_type": "full" if command.full else "incremental",
                "products_processed": stats["found"],
                "products_created": stats["created"],
                "products_updated": stats["updated"],
                "products_deactivated": stats["deactivated"],
                "stock_updates": stats["stock_updates"],
                "price_updates": stats["price_updates"],
                "error_count": len(stats["errors"]),
            }
        )
        current_domain.repository_for(SupplierIntegration).add(integration)

        log.info(
            "Supplier catalog synced",
            **{k: v for k, v in stats.items() if k != "errors"},
            error_count=len(stats["errors"]),
        )
        return stats


def sync_supplier_catalog(supplier_id: str, full: bool = True) -> dict:
    """Run a catalog sync, counting a fetch failure against the integration.

    Failed fetches are re-raised after the failure has been recorded.
    """
    integration = active_integration_for(str(supplier_id))
    try:
        return current_domain.process(SyncSupplierCatalog(supplier_id=supplier_id, full=full), asynchronous=False)
    except (ConfigurationError, TransportError) as exc:
        logger.error(
            "Supplier catalog sync failed",
            queue=DropshipQueue.SYNC.value,
            supplier_id=str(supplier_id),
            error=str(exc),
        )
        if integration is not None:
            record_integration_failure(str(integration.id), f"Catalog sync failed: {exc}")
        raise
