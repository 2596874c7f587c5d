from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from erpsync.models.field_mapping import TransformFunction


class FieldMappingItem(BaseModel):
    local_field: str = Field(..., min_length=1, max_length=255)
    erp_field: str = Field(..., min_length=1, max_length=255)
    is_required: bool = False
    transform_function: TransformFunction | None = None
    default_value: str | None = Field(default=None, max_length=255)
    manually_verified: bool = True


class FieldMappingReplace(BaseModel):
    mappings: list[FieldMappingItem]


class FieldMappingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_id: UUID
    local_field: str
    erp_field: str
    is_required: bool
    transform_function: str | None = None
    default_value: str | None = None
    ai_suggested: bool
    ai_confidence_score: Decimal | None = None
    manually_verified: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SuggestMappingsRequest(BaseModel):
    local_fields: list[str] = Field(..., min_length=1, max_length=200)
    erp_fields: list[str] = Field(..., min_length=1, max_length=500)


class FieldMappingSuggestion(BaseModel):
    """One mapping proposed by the AI model."""

    local_field: str
    erp_field: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    transform_function: TransformFunction | None = None
    is_required: bool = False
    reasoning: str | None = None
