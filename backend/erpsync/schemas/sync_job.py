from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from erpsync.models.erp_entity import EntityType
from erpsync.models.sync_job import SyncDirection


class SyncRequest(BaseModel):
    integration_id: UUID
    entity_type: EntityType
    direction: SyncDirection = SyncDirection.BIDIRECTIONAL


class SyncJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    integration_id: UUID
    tenant_id: UUID
    entity_type: str
    direction: str
    status: str
    triggered_by: UUID | None = None
    is_manual: bool
    records_processed: int
    records_succeeded: int
    records_failed: int
    retry_count: int
    next_retry_at: datetime | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
