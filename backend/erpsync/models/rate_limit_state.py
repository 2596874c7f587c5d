"""Per-tenant rate-limit counters.

One row per tenant.  Rows are read with ``SELECT ... FOR UPDATE`` so concurrent
workers serialise their admission decisions on the database.
"""

from sqlalchemy import Column, DateTime, Integer, String

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType


class SyncRateState(Base):
    __tablename__ = "erp_sync_rate_state"

    tenant_id = Column(UUIDType, primary_key=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)  # 60-second gate
    sync_count_1h = Column(Integer, nullable=False, default=0)
    window_start_1h = Column(DateTime(timezone=True), nullable=False)
    # idempotency key that claimed the last slot, for in-flight duplicates
    last_claim_key = Column(String(255), nullable=True)


class AIRateState(Base):
    __tablename__ = "erp_ai_rate_state"

    tenant_id = Column(UUIDType, primary_key=True)
    ai_count_1h = Column(Integer, nullable=False, default=0)
    window_start_1h = Column(DateTime(timezone=True), nullable=False)
