"""Audit trail for security-relevant ERP actions.

Recording is fire-and-forget: a failure to persist an entry is logged and
never reaches the caller.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erpsync.models.audit_log import AuditActionType
from erpsync.repositories.audit_log_repository import AuditLogRepository

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
SECRET_KEY_MARKERS = ("password", "token", "secret", "credential", "api_key", "authorization")


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SECRET_KEY_MARKERS)


def redact_metadata(value: Any) -> Any:
    """Mask values under secret-looking keys and make the rest JSON-safe."""
    if isinstance(value, dict):
        return {
            str(k): REDACTED if _is_secret_key(str(k)) else redact_metadata(v)
            for k, v in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact_metadata(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID | datetime):
        return str(value)
    return value


class AuditService:
    """Service for recording audit trail entries."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AuditLogRepository(db)

    def record(
        self,
        tenant_id: UUID | None,
        performed_by: UUID | None,
        action_type: AuditActionType | str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Append an entry.  ``performed_by`` is None for system actions."""
        action = action_type.value if isinstance(action_type, AuditActionType) else action_type
        if tenant_id is None:
            logger.warning("Audit entry %s dropped: no tenant", action)
            return
        try:
            self.repo.create(
                tenant_id=tenant_id,
                performed_by=performed_by,
                action_type=action,
                metadata=redact_metadata(metadata or {}),
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to write audit entry %s for tenant %s", action, tenant_id)
