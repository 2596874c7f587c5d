"""FieldMapping model: local field to ERP field bindings for an entity."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
    func,
)

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid


class TransformFunction(str, Enum):
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    STRIP = "strip"
    FORMAT_DATE = "format_date"
    TO_FLOAT = "to_float"


class FieldMapping(Base):
    __tablename__ = "erp_field_mappings"
    __table_args__ = (
        UniqueConstraint("entity_id", "local_field", name="uq_erp_field_mappings_entity_field"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    entity_id = Column(
        UUIDType,
        ForeignKey("erp_entities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    local_field = Column(String(255), nullable=False)
    erp_field = Column(String(255), nullable=False)
    is_required = Column(Boolean, nullable=False, default=False)
    transform_function = Column(String(30), nullable=True)
    default_value = Column(String(255), nullable=True)

    ai_suggested = Column(Boolean, nullable=False, default=False)
    ai_confidence_score = Column(Numeric(3, 2), nullable=True)
    manually_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
