"""FastAPI routes for the dropship engine."""

from typing import Any

from fastapi import APIRouter, Body, HTTPException
from protean.utils.globals import current_domain

from dropship.api.schemas import (
    CancelRequest,
    DecomposeResponse,
    PriceDecisionResponse,
    ProcessRetryQueueRequest,
    RetryQueueResponse,
    RetryRequest,
    RetryResponse,
    StatisticsResponse,
    StatusResponse,
    SubmissionResponse,
    SupplierPerformanceResponse,
    SyncRequest,
    SyncResponse,
    WebhookResponse,
)
from dropship.catalog_sync.pricing import ApprovePriceChange, RejectPriceChange
from dropship.catalog_sync.sync import sync_supplier_catalog
from dropship.dropship_order.decomposition import DecomposeOrder
from dropship.dropship_order.lifecycle import CancelDropshipOrder
from dropship.dropship_order.reporting import dropship_statistics, supplier_performance
from dropship.dropship_order.retry import ProcessRetryQueue, RetryDropshipOrder
from dropship.dropship_order.submission import SubmitDropshipOrder
from dropship.errors import (
    ConfigurationError,
    InvalidWebhookSignature,
    PermanentTransportError,
    SupplierNotIdentified,
    SyncNotSupported,
    TransientTransportError,
)
from dropship.webhook.ingestion import ingest_webhook

dropship_router = APIRouter(prefix="/dropship", tags=["dropship"])


# ---------------------------------------------------------------------------
# Inbound supplier events
# ---------------------------------------------------------------------------
@dropship_router.post("/webhooks/suppliers", response_model=WebhookResponse)
def supplier_webhook(payload: dict[str, Any] = Body(...)) -> WebhookResponse:
    """Receive an order or product event from a supplier."""
    try:
        result = ingest_webhook(payload)
    except InvalidWebhookSignature as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except SupplierNotIdentified as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return WebhookResponse(**result)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@dropship_router.post("/orders/{order_id}/decompose", response_model=DecomposeResponse)
def decompose_order(order_id: str) -> DecomposeResponse:
    """Split a paid order into one dropship order per supplier."""
    result = current_domain.process(DecomposeOrder(order_id=order_id), asynchronous=False)
    return DecomposeResponse(dropship_order_ids=result)


@dropship_router.post("/dropship-orders/{dropship_order_id}/submit", response_model=SubmissionResponse)
def submit_dropship_order(dropship_order_id: str) -> SubmissionResponse:
    """Send a pending dropship order to its supplier."""
    result = current_domain.process(SubmitDropshipOrder(dropship_order_id=dropship_order_id), asynchronous=False)
    return SubmissionResponse(outcome=result)


@dropship_router.post("/dropship-orders/{dropship_order_id}/retry", response_model=RetryResponse)
def retry_dropship_order(dropship_order_id: str, body: RetryRequest | None = None) -> RetryResponse:
    """Retry a failed, rejected or held dropship order."""
    body = body or RetryRequest()
    command = RetryDropshipOrder(dropship_order_id=dropship_order_id, reason=body.reason)
    result = current_domain.process(command, asynchronous=False)
    return RetryResponse(**result)


@dropship_router.post("/dropship-orders/{dropship_order_id}/cancel", response_model=StatusResponse)
def cancel_dropship_order(dropship_order_id: str, body: CancelRequest | None = None) -> StatusResponse:
    """Cancel a dropship order that has not reached a terminal status."""
    body = body or CancelRequest()
    command = CancelDropshipOrder(dropship_order_id=dropship_order_id, reason=body.reason)
    result = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=result)


@dropship_router.post("/retry-queue/process", response_model=RetryQueueResponse)
def process_retry_queue(body: ProcessRetryQueueRequest | None = None) -> RetryQueueResponse:
    """Retry every dropship order whose scheduled retry time has passed."""
    body = body or ProcessRetryQueueRequest()
    result = current_domain.process(ProcessRetryQueue(limit=body.limit), asynchronous=False)
    return RetryQueueResponse(**result)


# ---------------------------------------------------------------------------
# Suppliers & catalog
# ---------------------------------------------------------------------------
@dropship_router.post("/suppliers/{supplier_id}/sync", response_model=SyncResponse)
def sync_supplier(supplier_id: str, body: SyncRequest | None = None) -> SyncResponse:
    """Pull the supplier's product feed and reconcile the local catalog."""
    body = body or SyncRequest()
    try:
        result = sync_supplier_catalog(supplier_id, full=body.full)
    except (SyncNotSupported, ConfigurationError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TransientTransportError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except PermanentTransportError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return SyncResponse(**result)


@dropship_router.get("/suppliers/{supplier_id}/performance", response_model=SupplierPerformanceResponse)
def get_supplier_performance(supplier_id: str, days: int = 30) -> SupplierPerformanceResponse:
    return SupplierPerformanceResponse(**supplier_performance(supplier_id, days=days))


@dropship_router.get("/statistics", response_model=StatisticsResponse)
def get_statistics(supplier_id: str | None = None) -> StatisticsResponse:
    return StatisticsResponse(**dropship_statistics(supplier_id))


@dropship_router.post("/mappings/{mapping_id}/approve-price", response_model=PriceDecisionResponse)
def approve_price_change(mapping_id: str) -> PriceDecisionResponse:
    """Apply a supplier price change that was held for approval."""
    retail_price = current_domain.process(ApprovePriceChange(mapping_id=mapping_id), asynchronous=False)
    return PriceDecisionResponse(mapping_id=mapping_id, status="approved", retail_price=retail_price)


@dropship_router.post("/mappings/{mapping_id}/reject-price", response_model=PriceDecisionResponse)
def reject_price_change(mapping_id: str) -> PriceDecisionResponse:
    """Discard a held supplier price change."""
    current_domain.process(RejectPriceChange(mapping_id=mapping_id), asynchronous=False)
    return PriceDecisionResponse(mapping_id=mapping_id, status="rejected")
