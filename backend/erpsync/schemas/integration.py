from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from erpsync.models.integration import ErpSystem


class ConnectRequest(BaseModel):
    erp_system: ErpSystem
    name: str = Field(..., min_length=1, max_length=255)
    credentials: dict[str, Any] = Field(default_factory=dict)
    api_endpoint: str | None = Field(default=None, max_length=2048)
    api_version: str | None = Field(default=None, max_length=50)
    is_sandbox: bool = True


class RefreshTokenRequest(BaseModel):
    integration_id: UUID


class IntegrationResponse(BaseModel):
    """Integration as exposed over the API.  Secret columns are never included."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    tenant_id: UUID
    erp_system: str
    name: str
    api_endpoint: str | None = None
    api_version: str | None = None
    connection_status: str
    is_sandbox: bool
    is_active: bool
    token_expires_at: datetime | None = None
    last_test_at: datetime | None = None
    last_sync_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
