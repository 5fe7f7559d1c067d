"""SupplierIntegration aggregate — the transport a supplier is reached through.

Holds the transport configuration (endpoint, credentials, webhook secret,
FTP host) and the ``consecutive_failures`` counter. Every submission, sync
and inbound webhook records its outcome here via ``record_success`` or
``record_failure``; callers pass the integration explicitly and persist it
alongside the outcome.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from dropship.domain import dropship
from dropship.supplier.events import IntegrationConfigured


class IntegrationType(Enum):
    API = "api"
    WEBHOOK = "webhook"
    FTP = "ftp"
    EMAIL = "email"
    CSV_UPLOAD = "csv_upload"
    MANUAL = "manual"


AUTOMATED_TYPES = frozenset(
    {
        IntegrationType.API,
        IntegrationType.WEBHOOK,
        IntegrationType.FTP,
        IntegrationType.CSV_UPLOAD,
    }
)


@dropship.aggregate
class SupplierIntegration:
    supplier_id = Identifier(required=True)
    integration_type = String(required=True, max_length=20, choices=IntegrationType)
    is_active = Boolean(default=True)

    api_endpoint = String(max_length=500)
    api_key = String(max_length=255)
    webhook_url = String(max_length=500)
    webhook_secret = String(max_length=255)
    ftp_host = String(max_length=255)
    ftp_port = Integer(default=21)
    ftp_username = String(max_length=255)
    ftp_password = String(max_length=255)
    email_address = String(max_length=254)
    options = Text()  # JSON object of per-transport options

    consecutive_failures = Integer(default=0, min_value=0)
    last_successful_sync_at = DateTime()
    last_failed_sync_at = DateTime()
    last_error = Text()
    sync_statistics = Text()  # JSON object, merged on every success
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def configure(cls, supplier_id: str, integration_type: str, **settings):
        now = datetime.now(UTC)
        options = settings.pop("options", None)
        if isinstance(options, dict):
            options = json.dumps(options)
        integration = cls(
            supplier_id=supplier_id,
            integration_type=integration_type,
            options=options,
            created_at=now,
            updated_at=now,
            **settings,
        )
        integration.raise_(
            IntegrationConfigured(
                integration_id=str(integration.id),
                supplier_id=supplier_id,
                integration_type=integration_type,
                configured_at=now,
            )
        )
        return integration

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def kind(self) -> IntegrationType:
        return IntegrationType(self.integration_type)

    def is_automated(self) -> bool:
        return self.kind in AUTOMATED_TYPES

    def is_healthy(self, unhealthy_threshold: int = 3) -> bool:
        return bool(self.is_active) and (self.consecutive_failures or 0) < unhealthy_threshold

    def health_score(self) -> int:
        if not self.is_active:
            return 0
        return max(0, 100 - (self.consecutive_failures or 0) * 20)

    def option(self, key: str, default: Any = None) -> Any:
        """Read a per-transport option (``upload_directory``, ``page_size``, ...)."""
        if not self.options:
            return default
        return json.loads(self.options).get(key, default)

    # -------------------------------------------------------------------
    # Outcome recording
    # -------------------------------------------------------------------
    def record_success(self, statistics: dict | None = None) -> None:
        """Reset the failure counter after a successful exchange."""
        now = datetime.now(UTC)
        self.consecutive_failures = 0
        self.last_error = None
        self.last_successful_sync_at = now
        if statistics:
            merged = json.loads(self.sync_statistics) if self.sync_statistics else {}
            merged.update(statistics)
            self.sync_statistics = json.dumps(merged)
        self.updated_at = now

    def record_failure(self, error: str) -> None:
        """Count a failed exchange and remember why it failed."""
        now = datetime.now(UTC)
        self.consecutive_failures = (self.consecutive_failures or 0) + 1
        self.last_error = error
        self.last_failed_sync_at = now
        self.updated_at = now

    def disable(self) -> None:
        self.is_active = False
        self.updated_at = datetime.now(UTC)

    def enable(self) -> None:
        self.is_active = True
        self.consecutive_failures = 0
        self.last_error = None
        self.updated_at = datetime.now(UTC)
