"""Connecting, re-testing and disabling ERP integrations."""

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext, ensure_tenant_access
from erpsync.core.errors import NotFound, ValidationError
from erpsync.core.vault import CredentialVault, get_vault
from erpsync.models.audit_log import AuditActionType
from erpsync.models.erp_entity import EntityType
from erpsync.models.integration import ConnectionStatus, Integration
from erpsync.models.shared import utc_now
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.schemas.integration import ConnectRequest
from erpsync.services.audit_service import AuditService
from erpsync.services.erp_adapters.base import (
    ConnectionContext,
    ConnectionResult,
    get_erp_adapter,
)

logger = logging.getLogger(__name__)

# Connect-payload keys stored as plain OAuth config ("tenant_id" is the Azure tenant)
OAUTH_CONFIG_KEYS = ("client_id", "token_url", "scope", "tenant_id")


def load_integration(db: Session, auth: AuthContext, integration_id: UUID) -> Integration:
    """Resolve an integration and apply the cross-tenant guard."""
    integration = IntegrationRepository(db).get_by_id(integration_id)
    if integration is None:
        raise NotFound("Integration not found")
    ensure_tenant_access(auth, UUID(str(integration.tenant_id)))
    return integration


def context_from_integration(integration: Integration, vault: CredentialVault) -> ConnectionContext:
    """Decrypt the integration's secrets into a transient context."""
    credentials: dict[str, Any] = {}
    if integration.credentials_encrypted:
        credentials = vault.decrypt_json(str(integration.credentials_encrypted))
    return ConnectionContext(
        erp_system=str(integration.erp_system),
        api_endpoint=str(integration.api_endpoint or ""),
        credentials=credentials,
        access_token=vault.decrypt_optional(integration.access_token_encrypted),  # type: ignore[arg-type]
        refresh_token=vault.decrypt_optional(integration.refresh_token_encrypted),  # type: ignore[arg-type]
        oauth_config=dict(integration.oauth_config or {}),
        client_secret=vault.decrypt_optional(integration.oauth_client_secret_encrypted),  # type: ignore[arg-type]
    )


def context_from_request(request: ConnectRequest) -> ConnectionContext:
    credentials = dict(request.credentials)
    return ConnectionContext(
        erp_system=request.erp_system.value,
        api_endpoint=request.api_endpoint or "",
        credentials=credentials,
        access_token=credentials.get("access_token"),
        refresh_token=credentials.get("refresh_token"),
        oauth_config={k: credentials[k] for k in OAUTH_CONFIG_KEYS if credentials.get(k)},
        client_secret=credentials.get("client_secret"),
    )


class ConnectionService:
    def __init__(self, db: Session, vault: CredentialVault | None = None):
        self.db = db
        self.vault = vault or get_vault()
        self.integrations = IntegrationRepository(db)
        self.audit = AuditService(db)

    def _encrypted_fields(self, request: ConnectRequest) -> dict[str, Any]:
        """Split the connect payload into encrypted columns and plain OAuth config."""
        credentials = dict(request.credentials)
        oauth_config = {k: credentials.pop(k) for k in OAUTH_CONFIG_KEYS if k in credentials}
        access_token = credentials.pop("access_token", None)
        refresh_token = credentials.pop("refresh_token", None)
        expires_in = credentials.pop("expires_in", None)
        client_secret = credentials.pop("client_secret", None)
        webhook_secret = credentials.pop("webhook_secret", None)

        token_expires_at = None
        if expires_in is not None:
            try:
                token_expires_at = utc_now() + timedelta(seconds=int(expires_in))
            except (TypeError, ValueError):
                raise ValidationError("Invalid request: expires_in must be a number") from None

        return {
            "name": request.name,
            "api_endpoint": request.api_endpoint,
            "api_version": request.api_version,
            "is_sandbox": request.is_sandbox,
            "credentials_encrypted": self.vault.encrypt_json(credentials),
            "access_token_encrypted": self.vault.encrypt_optional(access_token),
            "refresh_token_encrypted": self.vault.encrypt_optional(refresh_token),
            "token_expires_at": token_expires_at,
            "oauth_config": {k: v for k, v in oauth_config.items() if v},
            "oauth_client_secret_encrypted": self.vault.encrypt_optional(client_secret),
            "webhook_secret_encrypted": self.vault.encrypt_optional(webhook_secret),
        }

    async def connect(self, auth: AuthContext, request: ConnectRequest) -> tuple[Integration, ConnectionResult]:
        """Probe the ERP and, on success, upsert the tenant's integration.

        Raises ``ValidationError`` when the probe fails; nothing is persisted
        in that case except the audit entry.
        """
        tenant_id = auth.tenant_id
        if tenant_id is None:
            raise ValidationError("Invalid request: connect requires a tenant user")

        adapter = get_erp_adapter(request.erp_system.value)
        ctx = context_from_request(request)
        result = await adapter.test_connection(ctx)

        if not result.success:
            self.audit.record(
                tenant_id,
                auth.performed_by,
                AuditActionType.ERP_CONNECT_FAILED,
                {"erp_system": request.erp_system.value, "reason": result.message},
            )
            raise ValidationError(result.message)

        fields = self._encrypted_fields(request)
        fields.update(
            connection_status=ConnectionStatus.CONNECTED.value,
            last_test_at=utc_now(),
            is_active=True,
        )
        integration, created = self.integrations.upsert_connected(
            tenant_id, request.erp_system.value, fields
        )
        seeded = self.seed_entities(integration, result.entities, adapter.default_field_mappings(ctx))

        self.audit.record(
            tenant_id,
            auth.performed_by,
            AuditActionType.ERP_CONNECT,
            {
                "integration_id": integration.id,
                "erp_system": request.erp_system.value,
                "created": created,
                "entities": seeded,
            },
        )
        logger.info(
            "Connected %s integration %s for tenant %s",
            request.erp_system.value,
            integration.id,
            tenant_id,
        )
        return integration, result

    def seed_entities(
        self,
        integration: Integration,
        entities: dict[str, str],
        field_mappings: dict[str, dict[str, str]],
    ) -> list[str]:
        """Bind the adapter's entity names and seed their default field mappings."""
        entity_repo = ErpEntityRepository(self.db)
        mapping_repo = FieldMappingRepository(self.db)
        valid_types = {t.value for t in EntityType}
        seeded: list[str] = []
        for entity_type, erp_name in entities.items():
            if entity_type not in valid_types:
                logger.warning("Ignoring unknown entity type %r for %s", entity_type, integration.id)
                continue
            entity = entity_repo.upsert(UUID(str(integration.id)), entity_type, erp_name)
            mapping_repo.seed_defaults(UUID(str(entity.id)), field_mappings.get(entity_type, {}))
            seeded.append(entity_type)
        return seeded

    async def test(self, auth: AuthContext, integration_id: UUID) -> tuple[Integration, ConnectionResult]:
        """Re-probe a stored integration and record the outcome."""
        integration = load_integration(self.db, auth, integration_id)
        adapter = get_erp_adapter(str(integration.erp_system))
        result = await adapter.test_connection(context_from_integration(integration, self.vault))

        status = ConnectionStatus.CONNECTED if result.success else ConnectionStatus.ERROR
        integration = self.integrations.update(
            integration,
            connection_status=status.value,
            last_test_at=utc_now(),
        )
        self.audit.record(
            integration.tenant_id,  # type: ignore[arg-type]
            auth.performed_by,
            AuditActionType.ERP_CONNECTION_TEST,
            {"integration_id": integration.id, "success": result.success},
        )
        return integration, result

    def disable(self, auth: AuthContext, integration_id: UUID) -> Integration:
        integration = load_integration(self.db, auth, integration_id)
        integration = self.integrations.soft_disable(integration)
        self.audit.record(
            integration.tenant_id,  # type: ignore[arg-type]
            auth.performed_by,
            AuditActionType.ERP_DISABLE,
            {"integration_id": integration.id},
        )
        return integration
