"""REST API transport — order submission and paged catalog fetch."""

import httpx
import structlog

from dropship.dropship_order.dropship_order import DropshipOrder
from dropship.errors import ConfigurationError, PermanentTransportError
from dropship.settings import get_settings
from dropship.supplier.integration import SupplierIntegration
from dropship.transport import get_http_client
from dropship.transport.payload import order_payload
from dropship.transport.retry import as_transport_error, call_with_retry

logger = structlog.get_logger(__name__)


def _credentials(integration: SupplierIntegration) -> tuple[str, str]:
    if not integration.api_endpoint or not integration.api_key:
        raise ConfigurationError("API configuration incomplete: endpoint and API key are required")
    return integration.api_endpoint.rstrip("/"), integration.api_key


def _headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
    }


def _json_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}


def submit_order(integration: SupplierIntegration, dropship_order: DropshipOrder) -> dict:
    """POST the order to ``{endpoint}/orders``.

    The supplier's ``order_id`` (if any) becomes the supplier order id.
    """
    endpoint, api_key = _credentials(integration)
    url = f"{endpoint}/orders"
    timeout = float(integration.option("timeout", get_settings().api_timeout_seconds))
    payload = order_payload(dropship_order)

    def _post() -> dict:
        try:
            response = get_http_client().post(url, json=payload, headers=_headers(api_key), timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise as_transport_error(exc, "API request failed") from exc
        return _json_body(response)

    data = call_with_retry(_post)
    logger.info(
        "Order submitted to supplier API",
        dropship_order_id=str(dropship_order.id),
        url=url,
        supplier_order_id=data.get("order_id"),
    )
    return {
        "method": "api",
        "supplier_order_id": data.get("order_id"),
        "estimated_delivery": data.get("estimated_delivery"),
        "response": data,
    }


def fetch_products(integration: SupplierIntegration, include_inactive: bool = False) -> list[dict]:
    """Collect the supplier's catalog from ``{endpoint}/products``.

    Pages until the supplier returns an empty page, says there is no more,
    or the page count reaches ``total_pages`` or the configured cap.
    """
    endpoint, api_key = _credentials(integration)
    settings = get_settings()
    url = f"{endpoint}/products"
    page_size = int(integration.option("page_size", settings.sync_page_size))
    timeout = float(integration.option("timeout", settings.sync_timeout_seconds))

    def _get_page(page: int) -> dict:
        params = {
            "page": page,
            "per_page": page_size,
            "include_inactive": "true" if include_inactive else "false",
        }
        try:
            response = get_http_client().get(url, params=params, headers=_headers(api_key), timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise as_transport_error(exc, "Catalog request failed") from exc
        body = _json_body(response)
        if not body:
            raise PermanentTransportError(f"Catalog page {page} was not a JSON object")
        return body

    products: list[dict] = []
    page = 1
    while True:
        data = call_with_retry(_get_page, page)
        batch = data.get("products") or data.get("data") or []
        if not batch:
            break
        products.extend(batch)

        has_more = bool(data.get("has_more", False))
        total_pages = int(data.get("total_pages") or 1)
        if not has_more or page >= total_pages or page >= settings.sync_max_pages:
            break
        page += 1

    logger.info(
        "Fetched supplier catalog from API",
        integration_id=str(integration.id),
        products=len(products),
        pages_fetched=page,
    )
    return products
