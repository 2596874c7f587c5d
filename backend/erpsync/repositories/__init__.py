from erpsync.repositories.audit_log_repository import AuditLogRepository
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.repositories.idempotency_repository import IdempotencyRepository
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.repositories.rate_limit_repository import RateLimitRepository, SlotClaim
from erpsync.repositories.sync_job_repository import SyncJobRepository
from erpsync.repositories.user_repository import UserRepository

__all__ = [
    "AuditLogRepository",
    "ErpEntityRepository",
    "FieldMappingRepository",
    "IdempotencyRepository",
    "IntegrationRepository",
    "RateLimitRepository",
    "SlotClaim",
    "SyncJobRepository",
    "UserRepository",
]
