from erpsync.models.audit_log import AuditActionType, AuditLog
from erpsync.models.erp_entity import EntityType, ErpEntity
from erpsync.models.field_mapping import FieldMapping, TransformFunction
from erpsync.models.idempotency_key import IdempotencyKey
from erpsync.models.integration import ConnectionStatus, ErpSystem, Integration
from erpsync.models.rate_limit_state import AIRateState, SyncRateState
from erpsync.models.sync_job import SyncDirection, SyncJob, SyncJobStatus
from erpsync.models.tenant import Tenant
from erpsync.models.user import ERP_ADMIN_ROLES, UserProfile, UserRole, UserRoleType

__all__ = [
    "AIRateState",
    "AuditActionType",
    "AuditLog",
    "ConnectionStatus",
    "ERP_ADMIN_ROLES",
    "EntityType",
    "ErpEntity",
    "ErpSystem",
    "FieldMapping",
    "IdempotencyKey",
    "Integration",
    "SyncDirection",
    "SyncJob",
    "SyncJobStatus",
    "SyncRateState",
    "Tenant",
    "TransformFunction",
    "UserProfile",
    "UserRole",
    "UserRoleType",
]
