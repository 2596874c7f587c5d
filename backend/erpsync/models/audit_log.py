"""AuditLog model: append-only record of security-relevant actions."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid, utc_now


class AuditActionType(str, Enum):
    ERP_CONNECT = "ERP_CONNECT"
    ERP_CONNECT_FAILED = "ERP_CONNECT_FAILED"
    ERP_CONNECTION_TEST = "ERP_CONNECTION_TEST"
    ERP_DISABLE = "ERP_DISABLE"
    ERP_TOKEN_REFRESH = "ERP_TOKEN_REFRESH"
    ERP_TOKEN_REFRESH_FAILED = "ERP_TOKEN_REFRESH_FAILED"
    ERP_SYNC_PENDING = "ERP_SYNC_PENDING"
    ERP_SYNC_IN_PROGRESS = "ERP_SYNC_IN_PROGRESS"
    ERP_SYNC_COMPLETED = "ERP_SYNC_COMPLETED"
    ERP_SYNC_RETRYING = "ERP_SYNC_RETRYING"
    ERP_SYNC_DEAD_LETTER = "ERP_SYNC_DEAD_LETTER"
    ERP_SYNC_REJECTED = "ERP_SYNC_REJECTED"
    ERP_AI_FIELD_MAPPING = "ERP_AI_FIELD_MAPPING"
    ERP_FIELD_MAPPING_UPDATE = "ERP_FIELD_MAPPING_UPDATE"
    ERP_WEBHOOK_RECEIVED = "ERP_WEBHOOK_RECEIVED"
    ERP_WEBHOOK_REJECTED = "ERP_WEBHOOK_REJECTED"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    performed_by = Column(UUIDType, nullable=True)  # None for system actions
    action_type = Column(String(50), nullable=False, index=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
