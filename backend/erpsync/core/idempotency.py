"""Idempotency ledger for ERP endpoints.

A key is recorded per ``(tenant_id, key)`` only after the guarded operation
has fully succeeded; a recorded key short-circuits identical requests for
``IDEMPOTENCY_TTL_HOURS``.
"""

import logging
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from erpsync.core.config import settings
from erpsync.core.errors import ValidationError
from erpsync.repositories.idempotency_repository import IdempotencyRepository

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
MAX_KEY_LENGTH = 255


def get_idempotency_key(request: Request, required: bool = False) -> str | None:
    """Read the ``Idempotency-Key`` header.

    Raises ``ValidationError`` when the header is required but absent, or
    when it is longer than the ledger column.
    """
    key = (request.headers.get(IDEMPOTENCY_HEADER) or "").strip()
    if not key:
        if required:
            raise ValidationError("Idempotency-Key header is required")
        return None
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError("Idempotency-Key header is too long")
    return key


def check_idempotency(db: Session, key: str, tenant_id: UUID) -> bool:
    """Return True when *key* was already recorded for *tenant_id*."""
    return IdempotencyRepository(db).exists(
        tenant_id, key, max_age_hours=settings.IDEMPOTENCY_TTL_HOURS
    )


def record_idempotency(db: Session, key: str, tenant_id: UUID) -> None:
    IdempotencyRepository(db).record(tenant_id, key)


def purge_expired(db: Session, max_age_hours: int | None = None) -> int:
    """Delete ledger rows older than the TTL; returns the number removed."""
    count = IdempotencyRepository(db).delete_expired(
        max_age_hours if max_age_hours is not None else settings.IDEMPOTENCY_TTL_HOURS
    )
    if count:
        logger.info("Purged %d expired idempotency keys", count)
    return count
