from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ErpEntityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    integration_id: UUID
    entity_type: str
    erp_entity_name: str | None = None
    is_enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ErpEntityUpdate(BaseModel):
    is_enabled: bool
