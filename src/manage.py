"""Dropship management CLI.

Database schema management plus the scheduled jobs: retry queue, catalog
sync, overdue order processing and integration health checks. Each job
prints its statistics as JSON.

Usage:
    python src/manage.py setup-db
    python src/manage.py drop-db
    python src/manage.py process-retries [--limit 50]
    python src/manage.py sync-supplier <supplier_id> [--incremental]
    python src/manage.py process-overdue [--days 7] [--action notify] [--supplier ID] [--limit 100] [--dry-run]
    python src/manage.py check-health [--no-alert]
"""

import argparse
import json
import sys

from dropship.utils.logging import add_context


def _domain():
    from dropship.domain import dropship
    from dropship.utils.logging import configure_logging

    configure_logging()
    dropship.init()
    return dropship


def _print(result) -> None:
    print(json.dumps(result, indent=2, default=str))


def setup_database():
    """Create the dropship database schema."""
    from dropship.utils.db import setup_db

    domain = _domain()
    print("Creating dropship database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    """Drop the dropship database schema."""
    from dropship.utils.db import drop_db

    domain = _domain()
    print("Dropping dropship database schema...")
    drop_db(domain)
    print("Done.")


def process_retries(limit):
    from dropship.dropship_order.retry import ProcessRetryQueue

    domain = _domain()
    with domain.domain_context():
        _print(domain.process(ProcessRetryQueue(limit=limit), asynchronous=False))


def sync_supplier(supplier_id, full):
    from dropship.catalog_sync.sync import sync_supplier_catalog

    domain = _domain()
    with domain.domain_context():
        _print(sync_supplier_catalog(supplier_id, full=full))


def process_overdue(days, action, supplier_id, limit, dry_run):
    from dropship.dropship_order.overdue import ProcessOverdueDropshipOrders

    domain = _domain()
    command = ProcessOverdueDropshipOrders(
        days=days,
        action=action,
        supplier_id=supplier_id,
        limit=limit,
        dry_run=dry_run,
    )
    with domain.domain_context():
        _print(domain.process(command, asynchronous=False))


def check_health(alert):
    from dropship.supplier.health import CheckIntegrationHealth

    domain = _domain()
    with domain.domain_context():
        _print(domain.process(CheckIntegrationHealth(alert=alert), asynchronous=False))


def main():
    parser = argparse.ArgumentParser(description="Dropship management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    retries_parser = subparsers.add_parser("process-retries", help="Retry dropship orders that are due")
    retries_parser.add_argument("--limit", type=int, default=50)

    sync_parser = subparsers.add_parser("sync-supplier", help="Sync a supplier's product catalog")
    sync_parser.add_argument("supplier_id")
    sync_parser.add_argument(
        "--incremental",
        action="store_true",
        help="Apply the feed without discontinuing SKUs missing from it",
    )

    overdue_parser = subparsers.add_parser("process-overdue", help="Handle overdue dropship orders")
    overdue_parser.add_argument("--days", type=int, default=None, help="Days past due (default: from settings)")
    overdue_parser.add_argument("--action", choices=["notify", "retry", "cancel", "escalate"], default="notify")
    overdue_parser.add_argument("--supplier", dest="supplier_id", default=None)
    overdue_parser.add_argument("--limit", type=int, default=100)
    overdue_parser.add_argument("--dry-run", action="store_true")

    health_parser = subparsers.add_parser("check-health", help="Report unhealthy supplier integrations")
    health_parser.add_argument("--no-alert", dest="alert", action="store_false", help="Do not email admins")

    args = parser.parse_args()
    add_context(job=args.command)

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "process-retries":
        process_retries(args.limit)
    elif args.command == "sync-supplier":
        sync_supplier(args.supplier_id, full=not args.incremental)
    elif args.command == "process-overdue":
        process_overdue(args.days, args.action, args.supplier_id, args.limit, args.dry_run)
    elif args.command == "check-health":
        check_health(args.alert)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
