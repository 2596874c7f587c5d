from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, func

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid


class EntityType(str, Enum):
    """Syncable resource types."""

    ORDERS = "orders"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    INVOICES = "invoices"
    PAYMENTS = "payments"


class ErpEntity(Base):
    """A syncable resource type bound to the adapter's resource name."""

    __tablename__ = "erp_entities"
    __table_args__ = (
        UniqueConstraint("integration_id", "entity_type", name="uq_erp_entities_integration_type"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    integration_id = Column(
        UUIDType,
        ForeignKey("erp_integrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type = Column(String(30), nullable=False)
    erp_entity_name = Column(String(255), nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
