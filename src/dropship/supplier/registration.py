"""Supplier onboarding — register suppliers, change status, configure integrations."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from dropship.domain import dropship
from dropship.supplier.integration import IntegrationType, SupplierIntegration
from dropship.supplier.supplier import Supplier, SupplierStatus


@dropship.command(part_of="Supplier")
class RegisterSupplier:
    name = String(required=True, max_length=200)
    email = String(max_length=254)
    status = String(max_length=30, default=SupplierStatus.PENDING_APPROVAL.value)


@dropship.command(part_of="Supplier")
class ChangeSupplierStatus:
    supplier_id = Identifier(required=True)
    status = String(required=True, max_length=30)


@dropship.command_handler(part_of=Supplier)
class SupplierHandler:
    @handle(RegisterSupplier)
    def register_supplier(self, command):
        supplier = Supplier.register(name=command.name, email=command.email, status=command.status)
        current_domain.repository_for(Supplier).add(supplier)
        return str(supplier.id)

    @handle(ChangeSupplierStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(Supplier)
        supplier = repo.get(command.supplier_id)
        supplier.change_status(command.status)
        repo.add(supplier)


@dropship.command(part_of="SupplierIntegration")
class ConfigureIntegration:
    """Configure the transport a supplier is reached through."""

    supplier_id = Identifier(required=True)
    integration_type = String(required=True, max_length=20)
    api_endpoint = String(max_length=500)
    api_key = String(max_length=255)
    webhook_url = String(max_length=500)
    webhook_secret = String(max_length=255)
    ftp_host = String(max_length=255)
    ftp_port = Integer(default=21)
    ftp_username = String(max_length=255)
    ftp_password = String(max_length=255)
    email_address = String(max_length=254)
    options = Text()  # JSON object


@dropship.command_handler(part_of=SupplierIntegration)
class ConfigureIntegrationHandler:
    @handle(ConfigureIntegration)
    def configure_integration(self, command):
        # Raises ObjectNotFoundError for unknown suppliers
        current_domain.repository_for(Supplier).get(command.supplier_id)

        if command.integration_type not in {t.value for t in IntegrationType}:
            raise ValidationError({"integration_type": [f"Unknown integration type: {command.integration_type}"]})

        options = json.loads(command.options) if command.options else None
        integration = SupplierIntegration.configure(
            supplier_id=command.supplier_id,
            integration_type=command.integration_type,
            api_endpoint=command.api_endpoint,
            api_key=command.api_key,
            webhook_url=command.webhook_url,
            webhook_secret=command.webhook_secret,
            ftp_host=command.ftp_host,
            ftp_port=command.ftp_port,
            ftp_username=command.ftp_username,
            ftp_password=command.ftp_password,
            email_address=command.email_address,
            options=options,
        )
        current_domain.repository_for(SupplierIntegration).add(integration)
        return str(integration.id)
