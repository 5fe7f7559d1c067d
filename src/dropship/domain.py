"""Dropship bounded context — Supplier Order Orchestration.

Turns paid customer orders into supplier-bound dropship orders, transmits
them over each supplier's integration, ingests asynchronous supplier
callbacks, keeps the supplier catalog in sync and rolls every dropship
order's status back up into its parent order.
"""

from protean.domain import Domain

dropship = Domain(name="dropship")
