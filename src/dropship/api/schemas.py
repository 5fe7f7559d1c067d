"""Pydantic API schemas for the dropship engine.

These are the external API contracts — separate from domain commands.
Money in responses is in minor units, as stored.
"""

from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class RetryRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"reason": "Supplier restocked"}]}}

    reason: str = Field("Manual retry", max_length=500)


class CancelRequest(BaseModel):
    reason: str = Field("Cancelled by admin", max_length=500)


class ProcessRetryQueueRequest(BaseModel):
    limit: int = Field(50, ge=1)


class SyncRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"full": True}]}}

    full: bool = True


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str


class WebhookResponse(BaseModel):
    event_type: str
    action: str
    reason: str | None = None
    dropship_order_id: str | None = None
    supplier_product_id: str | None = None
    status: str | None = None
    changes: list[str] = []


class DecomposeResponse(BaseModel):
    dropship_order_ids: list[str]


class SubmissionResponse(BaseModel):
    outcome: str


class RetryResponse(BaseModel):
    dropship_order_id: str
    outcome: str
    status: str
    problems: list[str] = []
    alternatives: dict[str, list[str]] = {}
    submission: str | None = None


class RetryQueueResponse(BaseModel):
    processed: int
    resubmitted: int
    rejected: int
    preflight_failed: int


class SyncResponse(BaseModel):
    found: int
    created: int
    updated: int
    deactivated: int
    stock_updates: int
    price_updates: int
    errors: list[str]


class StatisticsResponse(BaseModel):
    supplier_id: str | None = None
    totals: dict[str, int]
    by_status: dict[str, int]
    total_cost: int
    total_retail: int
    total_profit: int
    profit_margin_percentage: float
    avg_fulfillment_hours: float | None = None


class SupplierIssue(BaseModel):
    type: str
    description: str
    severity: str


class SupplierPerformanceResponse(BaseModel):
    supplier: dict[str, Any]
    period_days: int
    total_orders: int
    successful_orders: int
    failed_orders: int
    open_orders: int
    success_rate: float
    failure_rate: float
    avg_fulfillment_hours: float | None = None
    issues: list[SupplierIssue]


class PriceDecisionResponse(BaseModel):
    mapping_id: str
    status: str
    retail_price: int | None = None
