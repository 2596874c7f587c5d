"""Repository for per-entity field mappings."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.models.field_mapping import FieldMapping

_MAPPING_FIELDS = (
    "erp_field",
    "is_required",
    "transform_function",
    "default_value",
    "ai_suggested",
    "ai_confidence_score",
    "manually_verified",
)


class FieldMappingRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_for_entity(self, entity_id: UUID) -> list[FieldMapping]:
        return (
            self.db.query(FieldMapping)
            .filter(FieldMapping.entity_id == entity_id)
            .order_by(FieldMapping.local_field)
            .all()
        )

    def get(self, entity_id: UUID, local_field: str) -> FieldMapping | None:
        return (
            self.db.query(FieldMapping)
            .filter(
                FieldMapping.entity_id == entity_id,
                FieldMapping.local_field == local_field,
            )
            .first()
        )

    def upsert(
        self,
        entity_id: UUID,
        local_field: str,
        *,
        commit: bool = True,
        **values: Any,
    ) -> FieldMapping:
        mapping = self.get(entity_id, local_field)
        if mapping is None:
            mapping = FieldMapping(entity_id=entity_id, local_field=local_field)
            self.db.add(mapping)
        for key in _MAPPING_FIELDS:
            if key in values:
                value = values[key]
                if key == "ai_confidence_score" and value is not None:
                    value = Decimal(str(value)).quantize(Decimal("0.01"))
                setattr(mapping, key, value)
        if commit:
            self.db.commit()
            self.db.refresh(mapping)
        else:
            self.db.flush()
        return mapping

    def seed_defaults(self, entity_id: UUID, defaults: dict[str, str]) -> int:
        """Insert adapter default bindings; existing mappings are left untouched."""
        created = 0
        for local_field, erp_field in defaults.items():
            if self.get(entity_id, local_field) is None:
                self.db.add(
                    FieldMapping(entity_id=entity_id, local_field=local_field, erp_field=erp_field)
                )
                created += 1
        self.db.commit()
        return created

    def replace_all(self, entity_id: UUID, mappings: list[dict[str, Any]]) -> list[FieldMapping]:
        """Replace every mapping of *entity_id* in one transaction."""
        self.db.query(FieldMapping).filter(FieldMapping.entity_id == entity_id).delete()
        for item in mappings:
            values = dict(item)
            local_field = values.pop("local_field")
            self.db.add(FieldMapping(entity_id=entity_id, local_field=local_field, **values))
        self.db.commit()
        return self.get_for_entity(entity_id)
