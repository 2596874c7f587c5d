"""Repository for the per-tenant idempotency key ledger."""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.core.database import insert_for
from erpsync.models.idempotency_key import IdempotencyKey
from erpsync.models.shared import utc_now


class IdempotencyRepository:
    def __init__(self, db: Session):
        self.db = db

    def exists(self, tenant_id: UUID, key: str, *, max_age_hours: int = 24) -> bool:
        cutoff = utc_now() - timedelta(hours=max_age_hours)
        return (
            self.db.query(IdempotencyKey.key)
            .filter(
                IdempotencyKey.tenant_id == tenant_id,
                IdempotencyKey.key == key,
                IdempotencyKey.created_at >= cutoff,
            )
            .first()
            is not None
        )

    def record(self, tenant_id: UUID, key: str, created_at: datetime | None = None) -> None:
        """Insert (tenant_id, key); a concurrent writer of the same pair wins silently."""
        self.db.execute(
            insert_for(self.db, IdempotencyKey)
            .values(tenant_id=tenant_id, key=key, created_at=created_at or utc_now())
            .on_conflict_do_nothing(index_elements=["tenant_id", "key"])
        )
        self.db.commit()

    def delete_expired(self, max_age_hours: int = 24) -> int:
        cutoff = utc_now() - timedelta(hours=max_age_hours)
        count = (
            self.db.query(IdempotencyKey)
            .filter(IdempotencyKey.created_at < cutoff)
            .delete()
        )
        self.db.commit()
        return int(count)
