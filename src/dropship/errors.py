"""Error taxonomy for the dropship engine.

Configuration errors are fatal and surfaced to admins. Transient transport
errors are retried by the transport layer's own backoff. Permanent transport
errors and pre-flight validation errors fail the current attempt only.
"""


class DropshipError(Exception):
    """Base class for dropship engine errors."""


class ConfigurationError(DropshipError):
    """The integration is missing an endpoint, credentials or host."""


class TransportError(DropshipError):
    """A transport failed to deliver a submission or fetch a feed."""


class TransientTransportError(TransportError):
    """Retryable transport failure (timeouts, connection errors, 5xx, 429)."""


class PermanentTransportError(TransportError):
    """Non-retryable transport failure (4xx, malformed responses)."""


class PreflightValidationError(DropshipError):
    """One or more retry pre-flight checks failed."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class SupplierNotIdentified(DropshipError):
    """An inbound webhook could not be attributed to a supplier."""


class InvalidWebhookSignature(DropshipError):
    """An inbound webhook signature was missing or did not match."""


class SyncNotSupported(DropshipError):
    """The supplier's integration type cannot be synced automatically."""
