"""Transport-level retries with exponential backoff.

Raw client errors are classified once, at the edge, into
``TransientTransportError`` (retried here) or ``PermanentTransportError``
(surfaced immediately). This budget is independent of a dropship order's
``retry_count``, which belongs to the retry engine.
"""

import ftplib
from collections.abc import Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dropship.errors import PermanentTransportError, TransientTransportError, TransportError
from dropship.settings import get_settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient_error(exception: Exception) -> bool:
    """True for errors worth retrying: network trouble, timeouts, 5xx and 429."""
    if isinstance(exception, TransientTransportError):
        return True
    if isinstance(exception, PermanentTransportError):
        return False

    if isinstance(exception, httpx.TimeoutException | httpx.ConnectError | httpx.NetworkError):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        status_code = exception.response.status_code
        return 500 <= status_code < 600 or status_code == 429

    # 4xx FTP replies are temporary, 5xx are permanent
    if isinstance(exception, ftplib.error_temp):
        return True
    if isinstance(exception, ftplib.error_perm | ftplib.error_proto):
        return False

    return isinstance(exception, TimeoutError | ConnectionError | EOFError)


def as_transport_error(exception: Exception, context: str) -> TransportError:
    """Wrap a client exception in the matching transport error."""
    message = f"{context}: {exception}"
    if is_transient_error(exception):
        return TransientTransportError(message)
    return PermanentTransportError(message)


def call_with_retry(func: Callable[..., T], *args, **kwargs) -> T:
    """Call ``func``, retrying transient transport errors with backoff.

    Attempts and backoff bounds come from the ``transport_*`` settings. The
    last error is re-raised once the budget is spent.
    """
    settings = get_settings()
    retrying = Retrying(
        stop=stop_after_attempt(settings.transport_max_attempts),
        wait=wait_exponential(
            multiplier=settings.transport_backoff_initial_seconds,
            min=settings.transport_backoff_initial_seconds,
            max=settings.transport_backoff_max_seconds,
        ),
        retry=retry_if_exception_type(TransientTransportError),
        reraise=True,
        before_sleep=_log_retry_attempt,
    )
    return retrying(func, *args, **kwargs)


def _log_retry_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is not None:
        logger.warning(
            "Retrying transport call after transient error",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )
