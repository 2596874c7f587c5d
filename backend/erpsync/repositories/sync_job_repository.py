"""Repository for SyncJob rows.  Jobs are never deleted."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.models.sync_job import SyncJob, SyncJobStatus


class SyncJobRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        integration_id: UUID,
        tenant_id: UUID,
        entity_type: str,
        direction: str,
        triggered_by: UUID | None = None,
        is_manual: bool = False,
        idempotency_key: str | None = None,
        **fields: Any,
    ) -> SyncJob:
        job = SyncJob(
            integration_id=integration_id,
            tenant_id=tenant_id,
            entity_type=entity_type,
            direction=direction,
            triggered_by=triggered_by,
            is_manual=is_manual,
            idempotency_key=idempotency_key,
            **fields,
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        return job

    def get_by_id(self, job_id: UUID, tenant_id: UUID | None = None) -> SyncJob | None:
        query = self.db.query(SyncJob).filter(SyncJob.id == job_id)
        if tenant_id is not None:
            query = query.filter(SyncJob.tenant_id == tenant_id)
        return query.first()

    def get_all(
        self,
        tenant_id: UUID,
        skip: int = 0,
        limit: int = 100,
        integration_id: UUID | None = None,
        status: str | None = None,
    ) -> list[SyncJob]:
        query = self.db.query(SyncJob).filter(SyncJob.tenant_id == tenant_id)
        if integration_id is not None:
            query = query.filter(SyncJob.integration_id == integration_id)
        if status is not None:
            query = query.filter(SyncJob.status == status)
        return query.order_by(SyncJob.created_at.desc()).offset(skip).limit(limit).all()

    def get_due_for_retry(self, now: datetime, limit: int = 100) -> list[SyncJob]:
        return (
            self.db.query(SyncJob)
            .filter(
                SyncJob.status == SyncJobStatus.RETRYING.value,
                SyncJob.next_retry_at.isnot(None),
                SyncJob.next_retry_at <= now,
            )
            .order_by(SyncJob.next_retry_at)
            .limit(limit)
            .all()
        )

    def get_latest_for_key(self, tenant_id: UUID, idempotency_key: str) -> SyncJob | None:
        return (
            self.db.query(SyncJob)
            .filter(
                SyncJob.tenant_id == tenant_id,
                SyncJob.idempotency_key == idempotency_key,
            )
            .order_by(SyncJob.created_at.desc())
            .first()
        )
