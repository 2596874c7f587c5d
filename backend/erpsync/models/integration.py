"""Integration model: one ERP connection per tenant and ERP system."""

from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import validates

from erpsync.core.database import Base
from erpsync.core.vault import is_ciphertext
from erpsync.models.shared import DEFAULT_TENANT_ID, UUIDType, generate_uuid


class ErpSystem(str, Enum):
    """Supported ERP systems; each has exactly one adapter."""

    ODOO = "odoo"
    SAP = "sap"
    QUICKBOOKS = "quickbooks"
    SAGE = "sage"
    DYNAMICS365 = "dynamics365"
    CUSTOM_API = "custom_api"


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


ENCRYPTED_COLUMNS = (
    "credentials_encrypted",
    "access_token_encrypted",
    "refresh_token_encrypted",
    "oauth_client_secret_encrypted",
    "webhook_secret_encrypted",
)


class Integration(Base):
    """ERP integration.  Secret columns only ever hold vault ciphertext."""

    __tablename__ = "erp_integrations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "erp_system", name="uq_erp_integrations_tenant_system"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_TENANT_ID,
    )
    erp_system = Column(String(30), nullable=False)
    name = Column(String(255), nullable=False)
    api_endpoint = Column(String(2048), nullable=True)
    api_version = Column(String(50), nullable=True)

    credentials_encrypted = Column(Text, nullable=True)
    access_token_encrypted = Column(Text, nullable=True)
    refresh_token_encrypted = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    # client_id / token_url / scope only; the client secret has its own column
    oauth_config = Column(JSON, nullable=False, default=dict)
    oauth_client_secret_encrypted = Column(Text, nullable=True)
    webhook_secret_encrypted = Column(Text, nullable=True)

    connection_status = Column(
        String(20), nullable=False, default=ConnectionStatus.DISCONNECTED.value
    )
    is_sandbox = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=False)
    last_test_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @validates(*ENCRYPTED_COLUMNS)
    def _reject_plaintext(self, key: str, value: Any) -> Any:
        if value is not None and not is_ciphertext(value):
            raise ValueError(f"{key} must hold vault ciphertext")
        return value

    @validates("oauth_config")
    def _reject_embedded_secret(self, key: str, value: Any) -> Any:
        if value and "client_secret" in value:
            raise ValueError("oauth_config must not embed the client secret")
        return value
