"""Sync job state machine.

    pending -> in_progress -> completed
                           -> retrying -> in_progress ...
                           -> dead_letter

``dead_letter`` is only reachable through :meth:`SyncJobStateMachine.fail`
once the retry budget is spent.  Every transition is committed and audited.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.core.config import settings
from erpsync.models.audit_log import AuditActionType
from erpsync.models.shared import utc_now
from erpsync.models.sync_job import SyncJob, SyncJobStatus
from erpsync.services.audit_service import AuditService

logger = logging.getLogger(__name__)

TRANSITIONS: dict[SyncJobStatus, frozenset[SyncJobStatus]] = {
    SyncJobStatus.PENDING: frozenset({SyncJobStatus.IN_PROGRESS}),
    SyncJobStatus.IN_PROGRESS: frozenset(
        {SyncJobStatus.COMPLETED, SyncJobStatus.RETRYING, SyncJobStatus.DEAD_LETTER}
    ),
    SyncJobStatus.RETRYING: frozenset({SyncJobStatus.IN_PROGRESS}),
    SyncJobStatus.COMPLETED: frozenset(),
    SyncJobStatus.DEAD_LETTER: frozenset(),
}

STATUS_AUDIT_ACTIONS = {
    SyncJobStatus.PENDING: AuditActionType.ERP_SYNC_PENDING,
    SyncJobStatus.IN_PROGRESS: AuditActionType.ERP_SYNC_IN_PROGRESS,
    SyncJobStatus.COMPLETED: AuditActionType.ERP_SYNC_COMPLETED,
    SyncJobStatus.RETRYING: AuditActionType.ERP_SYNC_RETRYING,
    SyncJobStatus.DEAD_LETTER: AuditActionType.ERP_SYNC_DEAD_LETTER,
}


class InvalidStateTransition(Exception):
    def __init__(self, current: SyncJobStatus, target: SyncJobStatus):
        super().__init__(f"Invalid sync job transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class SyncJobStateMachine:
    """Drives one SyncJob row through its lifecycle."""

    def __init__(
        self,
        db: Session,
        job: SyncJob,
        performed_by: UUID | None = None,
        max_retries: int | None = None,
        backoff_seconds: int | None = None,
    ):
        self.db = db
        self.job = job
        self.performed_by = performed_by
        self.max_retries = settings.SYNC_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_seconds = (
            settings.SYNC_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self.audit = AuditService(db)

    @property
    def status(self) -> SyncJobStatus:
        return SyncJobStatus(str(self.job.status))

    def can_transition(self, target: SyncJobStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def _audit(self, status: SyncJobStatus, extra: dict[str, Any] | None = None) -> None:
        metadata: dict[str, Any] = {
            "job_id": self.job.id,
            "integration_id": self.job.integration_id,
            "entity_type": self.job.entity_type,
            "direction": self.job.direction,
            "retry_count": self.job.retry_count,
        }
        if extra:
            metadata.update(extra)
        self.audit.record(
            self.job.tenant_id,  # type: ignore[arg-type]
            self.performed_by,
            STATUS_AUDIT_ACTIONS[status],
            metadata,
        )

    def _transition(self, target: SyncJobStatus, **fields: Any) -> SyncJob:
        current = self.status
        if not self.can_transition(target):
            raise InvalidStateTransition(current, target)
        self.job.status = target.value  # type: ignore[assignment]
        for key, value in fields.items():
            setattr(self.job, key, value)
        self.db.commit()
        self.db.refresh(self.job)
        logger.info("Sync job %s: %s -> %s", self.job.id, current.value, target.value)
        self._audit(target, {"from_status": current.value})
        return self.job

    def created(self) -> None:
        """Audit the freshly inserted ``pending`` row."""
        self._audit(SyncJobStatus.PENDING)

    def start(self, now: datetime | None = None) -> SyncJob:
        now = now or utc_now()
        return self._transition(
            SyncJobStatus.IN_PROGRESS,
            started_at=self.job.started_at or now,
            next_retry_at=None,
        )

    def complete(
        self,
        processed: int,
        succeeded: int,
        failed: int,
        now: datetime | None = None,
    ) -> SyncJob:
        return self._transition(
            SyncJobStatus.COMPLETED,
            records_processed=processed,
            records_succeeded=succeeded,
            records_failed=failed,
            error_message=None,
            completed_at=now or utc_now(),
        )

    def fail(self, error_message: str, now: datetime | None = None) -> SyncJob:
        """Count a failed attempt: ``retrying`` with backoff, or ``dead_letter``."""
        now = now or utc_now()
        retry_count = int(self.job.retry_count or 0) + 1
        if retry_count >= self.max_retries:
            return self._transition(
                SyncJobStatus.DEAD_LETTER,
                retry_count=retry_count,
                error_message=error_message,
                next_retry_at=None,
                completed_at=now,
            )
        delay = timedelta(seconds=self.backoff_seconds * 2 ** (retry_count - 1))
        return self._transition(
            SyncJobStatus.RETRYING,
            retry_count=retry_count,
            error_message=error_message,
            next_retry_at=now + delay,
        )
