"""IdempotencyKey model: per-tenant ledger of successfully processed requests."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, utc_now


class IdempotencyKey(Base):
    """Write-once row keyed by (tenant_id, key); expires after 24 hours."""

    __tablename__ = "erp_idempotency_keys"
    __table_args__ = (Index("ix_erp_idempotency_keys_tenant_created", "tenant_id", "created_at"),)

    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        primary_key=True,
    )
    key = Column(String(255), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
