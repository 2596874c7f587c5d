from erpsync.schemas.audit_log import AuditLogResponse
from erpsync.schemas.erp_entity import ErpEntityResponse, ErpEntityUpdate
from erpsync.schemas.field_mapping import (
    FieldMappingItem,
    FieldMappingReplace,
    FieldMappingResponse,
    FieldMappingSuggestion,
    SuggestMappingsRequest,
)
from erpsync.schemas.integration import ConnectRequest, IntegrationResponse, RefreshTokenRequest
from erpsync.schemas.sync_job import SyncJobResponse, SyncRequest
from erpsync.schemas.webhook import WEBHOOK_EVENT_ENTITIES, WebhookEvent

__all__ = [
    "AuditLogResponse",
    "ConnectRequest",
    "ErpEntityResponse",
    "ErpEntityUpdate",
    "FieldMappingItem",
    "FieldMappingReplace",
    "FieldMappingResponse",
    "FieldMappingSuggestion",
    "IntegrationResponse",
    "RefreshTokenRequest",
    "SuggestMappingsRequest",
    "SyncJobResponse",
    "SyncRequest",
    "WEBHOOK_EVENT_ENTITIES",
    "WebhookEvent",
]
