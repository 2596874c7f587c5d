from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.models.erp_entity import ErpEntity


class ErpEntityRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(self, integration_id: UUID) -> list[ErpEntity]:
        return (
            self.db.query(ErpEntity)
            .filter(ErpEntity.integration_id == integration_id)
            .order_by(ErpEntity.entity_type)
            .all()
        )

    def get(self, integration_id: UUID, entity_type: str) -> ErpEntity | None:
        return (
            self.db.query(ErpEntity)
            .filter(
                ErpEntity.integration_id == integration_id,
                ErpEntity.entity_type == entity_type,
            )
            .first()
        )

    def upsert(self, integration_id: UUID, entity_type: str, erp_entity_name: str) -> ErpEntity:
        """Bind *entity_type* to the adapter's resource name, re-enabling it."""
        entity = self.get(integration_id, entity_type)
        if entity is None:
            entity = ErpEntity(integration_id=integration_id, entity_type=entity_type)
            self.db.add(entity)
        entity.erp_entity_name = erp_entity_name  # type: ignore[assignment]
        entity.is_enabled = True  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(entity)
        return entity

    def set_enabled(self, entity: ErpEntity, is_enabled: bool) -> ErpEntity:
        entity.is_enabled = is_enabled  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(entity)
        return entity
