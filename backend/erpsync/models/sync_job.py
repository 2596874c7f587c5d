"""SyncJob model: one row per sync attempt chain, never deleted."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid


class SyncDirection(str, Enum):
    IMPORT = "import"
    EXPORT = "export"
    BIDIRECTIONAL = "bidirectional"


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    RETRYING = "retrying"
    DEAD_LETTER = "dead_letter"


class SyncJob(Base):
    __tablename__ = "erp_sync_jobs"
    __table_args__ = (
        Index("ix_erp_sync_jobs_status_next_retry", "status", "next_retry_at"),
        Index("ix_erp_sync_jobs_tenant_key", "tenant_id", "idempotency_key"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    integration_id = Column(
        UUIDType,
        ForeignKey("erp_integrations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    entity_type = Column(String(30), nullable=False)
    direction = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SyncJobStatus.PENDING.value)
    triggered_by = Column(UUIDType, nullable=True)
    is_manual = Column(Boolean, nullable=False, default=False)
    idempotency_key = Column(String(255), nullable=True)

    records_processed = Column(Integer, nullable=False, default=0)
    records_succeeded = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)

    retry_count = Column(Integer, nullable=False, default=0)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
