"""Repository for AuditLog rows.  Append-only: there is no update or delete."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.models.audit_log import AuditLog


class AuditLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        tenant_id: UUID,
        action_type: str,
        performed_by: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog:
        audit_log = AuditLog(
            tenant_id=tenant_id,
            performed_by=performed_by,
            action_type=action_type,
            metadata_=metadata or {},
        )
        self.db.add(audit_log)
        self.db.commit()
        self.db.refresh(audit_log)
        return audit_log

    def get_all(
        self,
        tenant_id: UUID,
        skip: int = 0,
        limit: int = 100,
        action_type: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)
        if action_type is not None:
            query = query.filter(AuditLog.action_type == action_type)
        if start_date is not None:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date is not None:
            query = query.filter(AuditLog.created_at <= end_date)
        return query.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit).all()
