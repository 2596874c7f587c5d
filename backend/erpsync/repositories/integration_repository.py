"""Integration repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erpsync.models.integration import ConnectionStatus, Integration


class IntegrationRepository:
    """Repository for Integration model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        tenant_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Integration]:
        """Get all integrations for a tenant."""
        return (
            self.db.query(Integration)
            .filter(Integration.tenant_id == tenant_id)
            .order_by(Integration.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_id(
        self,
        integration_id: UUID,
        tenant_id: UUID | None = None,
    ) -> Integration | None:
        """Get an integration by ID.

        Without *tenant_id* the row is returned whatever its owner; callers
        that do this must compare ``tenant_id`` themselves.
        """
        query = self.db.query(Integration).filter(Integration.id == integration_id)
        if tenant_id is not None:
            query = query.filter(Integration.tenant_id == tenant_id)
        return query.first()

    def get_by_system(self, tenant_id: UUID, erp_system: str) -> Integration | None:
        return (
            self.db.query(Integration)
            .filter(
                Integration.tenant_id == tenant_id,
                Integration.erp_system == erp_system,
            )
            .first()
        )

    def get_with_expiring_tokens(self, before: datetime) -> list[Integration]:
        """Active integrations holding a refresh token that expires before *before*."""
        return (
            self.db.query(Integration)
            .filter(
                Integration.is_active.is_(True),
                Integration.refresh_token_encrypted.isnot(None),
                Integration.token_expires_at.isnot(None),
                Integration.token_expires_at <= before,
            )
            .all()
        )

    def upsert_connected(
        self,
        tenant_id: UUID,
        erp_system: str,
        fields: dict[str, Any],
    ) -> tuple[Integration, bool]:
        """Create or update the tenant's integration for *erp_system*.

        Returns ``(integration, created)``.  A concurrent create for the same
        (tenant, system) pair hits the unique constraint and is retried as an
        update.
        """
        integration = self.get_by_system(tenant_id, erp_system)
        created = integration is None
        if integration is None:
            integration = Integration(tenant_id=tenant_id, erp_system=erp_system)
            self.db.add(integration)
        for key, value in fields.items():
            setattr(integration, key, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            integration = self.get_by_system(tenant_id, erp_system)
            if integration is None:
                raise
            created = False
            for key, value in fields.items():
                setattr(integration, key, value)
            self.db.commit()
        self.db.refresh(integration)
        return integration, created

    def update(self, integration: Integration, **fields: Any) -> Integration:
        for key, value in fields.items():
            setattr(integration, key, value)
        self.db.commit()
        self.db.refresh(integration)
        return integration

    def soft_disable(self, integration: Integration) -> Integration:
        """Disable without deleting; sync history keeps pointing at the row."""
        return self.update(
            integration,
            is_active=False,
            connection_status=ConnectionStatus.DISCONNECTED.value,
        )
