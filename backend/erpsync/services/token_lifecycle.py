"""OAuth token lifecycle: refresh ahead of expiry, persist re-encrypted tokens."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.core.config import settings
from erpsync.core.errors import TokenRefreshFailed
from erpsync.core.vault import CredentialVault, VaultError, get_vault
from erpsync.models.audit_log import AuditActionType
from erpsync.models.integration import Integration
from erpsync.models.shared import as_utc, utc_now
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.services.audit_service import AuditService
from erpsync.services.connection_service import context_from_integration
from erpsync.services.erp_adapters.base import get_erp_adapter

logger = logging.getLogger(__name__)


@dataclass
class RefreshOutcome:
    refreshed: bool
    expires_at: datetime | None


class TokenLifecycleService:
    def __init__(self, db: Session, vault: CredentialVault | None = None):
        self.db = db
        self._vault = vault
        self.integrations = IntegrationRepository(db)
        self.audit = AuditService(db)

    @property
    def vault(self) -> CredentialVault:
        if self._vault is None:
            self._vault = get_vault()
        return self._vault

    @staticmethod
    def needs_refresh(integration: Integration, now: datetime | None = None) -> bool:
        """False when there is no expiry or it lies beyond the refresh buffer."""
        expires_at = as_utc(integration.token_expires_at)  # type: ignore[arg-type]
        if expires_at is None:
            return False
        now = now or utc_now()
        buffer = timedelta(seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS)
        return not (now + buffer < expires_at)

    async def ensure_fresh(
        self,
        integration: Integration,
        performed_by: UUID | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Refresh the integration's tokens if they expire within the buffer.

        Session-auth systems are skipped.  Returns True when a refresh ran;
        raises ``TokenRefreshFailed`` when it was needed and failed.
        """
        adapter = get_erp_adapter(str(integration.erp_system))
        if not adapter.supports_token_refresh:
            return False
        if not self.needs_refresh(integration, now):
            return False
        await self.refresh(integration, performed_by)
        return True

    async def refresh_now(
        self,
        integration: Integration,
        performed_by: UUID | None = None,
    ) -> RefreshOutcome:
        """Explicit refresh request: runs the grant regardless of expiry.

        Session-auth systems are an error here rather than a no-op.
        """
        adapter = get_erp_adapter(str(integration.erp_system))
        if not adapter.supports_token_refresh:
            raise TokenRefreshFailed(f"Token refresh not supported for {integration.erp_system}")
        integration = await self.refresh(integration, performed_by)
        return RefreshOutcome(
            refreshed=True,
            expires_at=as_utc(integration.token_expires_at),  # type: ignore[arg-type]
        )

    async def refresh(self, integration: Integration, performed_by: UUID | None = None) -> Integration:
        """Run the refresh grant and store the new tokens encrypted."""
        adapter = get_erp_adapter(str(integration.erp_system))
        try:
            ctx = context_from_integration(integration, self.vault)
            grant = await adapter.refresh_token(ctx)
            fields = {
                "access_token_encrypted": self.vault.encrypt(grant.access_token),
                "refresh_token_encrypted": self.vault.encrypt_optional(grant.refresh_token),
                "token_expires_at": grant.expires_at,
            }
        except (TokenRefreshFailed, VaultError) as e:
            logger.warning("Token refresh failed for integration %s: %r", integration.id, e)
            self.audit.record(
                integration.tenant_id,  # type: ignore[arg-type]
                performed_by,
                AuditActionType.ERP_TOKEN_REFRESH_FAILED,
                {"integration_id": integration.id, "erp_system": integration.erp_system},
            )
            if isinstance(e, TokenRefreshFailed):
                raise
            raise TokenRefreshFailed() from e

        integration = self.integrations.update(integration, **fields)
        self.audit.record(
            integration.tenant_id,  # type: ignore[arg-type]
            performed_by,
            AuditActionType.ERP_TOKEN_REFRESH,
            {
                "integration_id": integration.id,
                "erp_system": integration.erp_system,
                "expires_at": grant.expires_at,
            },
        )
        logger.info("Refreshed tokens for integration %s", integration.id)
        return integration

    async def refresh_expiring(self, now: datetime | None = None) -> int:
        """Refresh every active integration whose tokens expire within the buffer."""
        now = now or utc_now()
        horizon = now + timedelta(seconds=settings.TOKEN_REFRESH_BUFFER_SECONDS)
        count = 0
        for integration in self.integrations.get_with_expiring_tokens(horizon):
            try:
                if await self.ensure_fresh(integration, now=now):
                    count += 1
            except TokenRefreshFailed:
                # already audited; the integration stays active for re-authorisation
                continue
        return count
