from sqlalchemy import Column, DateTime, String, func

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid


class Tenant(Base):
    """An isolated customer organisation; all ERP data is partitioned by tenant."""

    __tablename__ = "tenants"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
