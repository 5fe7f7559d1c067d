"""Outbound order documents: the JSON payload and the CSV order sheet.

Money is stored in minor units and sent to suppliers in major units.
"""

import csv
import io
import json

from dropship.dropship_order.dropship_order import DropshipOrder

CSV_COLUMNS = [
    "order_id",
    "sku",
    "product_name",
    "quantity",
    "unit_price",
    "total_price",
    "customer_name",
    "shipping_address",
    "created_at",
]


def to_major_units(amount: int | None) -> float:
    return round((amount or 0) / 100, 2)


def to_minor_units(price) -> int:
    """Supplier prices arrive in major units, as numbers or numeric strings."""
    return int(round(float(price) * 100))


def order_payload(dropship_order: DropshipOrder) -> dict:
    """The normalized order document sent over api and webhook transports."""
    return {
        "external_order_id": str(dropship_order.id),
        "customer": {
            "name": dropship_order.customer_name or "Guest Customer",
            "email": dropship_order.customer_email,
        },
        "shipping_address": dropship_order.address,
        "items": [
            {
                "sku": item.supplier_sku,
                "quantity": item.quantity,
                "unit_price": to_major_units(item.unit_supplier_cost),
                "product_name": item.product_name,
            }
            for item in dropship_order.items
        ],
        "total_amount": to_major_units(dropship_order.total_cost),
        "currency": dropship_order.currency,
        "notes": dropship_order.notes,
        "created_at": dropship_order.created_at.isoformat() if dropship_order.created_at else None,
    }


def order_csv(dropship_order: DropshipOrder) -> str:
    """One row per line item, header first."""
    created_at = dropship_order.created_at.strftime("%Y-%m-%d %H:%M:%S") if dropship_order.created_at else ""
    address = json.dumps(dropship_order.address) if dropship_order.shipping_address else ""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for item in dropship_order.items:
        writer.writerow(
            {
                "order_id": str(dropship_order.id),
                "sku": item.supplier_sku,
                "product_name": item.product_name or "",
                "quantity": item.quantity,
                "unit_price": f"{to_major_units(item.unit_supplier_cost):.2f}",
                "total_price": f"{to_major_units(item.total_cost):.2f}",
                "customer_name": dropship_order.customer_name or "Guest",
                "shipping_address": address,
                "created_at": created_at,
            }
        )
    return buffer.getvalue()


def order_email_body(dropship_order: DropshipOrder) -> str:
    """Plain-text order sheet for suppliers that take orders by email."""
    address = dropship_order.address or {}
    lines = [
        f"New order {dropship_order.id}",
        "",
        f"Customer: {dropship_order.customer_name or 'Guest Customer'}",
        "Ship to:",
    ]
    lines.extend(f"  {value}" for value in address.values() if value)
    lines.append("")
    lines.append("Items:")
    for item in dropship_order.items:
        lines.append(
            f"  {item.quantity} x {item.supplier_sku} {item.product_name or ''}"
            f" @ {to_major_units(item.unit_supplier_cost):.2f} {dropship_order.currency}"
        )
    lines.append("")
    lines.append(f"Total: {to_major_units(dropship_order.total_cost):.2f} {dropship_order.currency}")
    return "\n".join(lines)
