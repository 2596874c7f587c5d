"""Per-tenant admission control backed by database row locks.

Handlers are stateless and may run on many processes, so the counters live
in ``erp_sync_rate_state`` / ``erp_ai_rate_state`` and every decision is one
locked read-modify-write (see :class:`RateLimitRepository`).
"""

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erpsync.core.config import settings
from erpsync.core.errors import RateLimited
from erpsync.repositories.rate_limit_repository import RateLimitRepository, SlotClaim

logger = logging.getLogger(__name__)


def check_sync_rate(
    db: Session,
    tenant_id: UUID,
    idempotency_key: str | None = None,
) -> SlotClaim:
    """Claim a sync slot: one per cooldown and a capped number per hour.

    Fails open when the rate-limit store is unavailable.
    """
    try:
        return RateLimitRepository(db).claim_sync_slot(
            tenant_id,
            cooldown_seconds=settings.SYNC_COOLDOWN_SECONDS,
            max_per_hour=settings.SYNC_RATE_LIMIT_PER_HOUR,
            idempotency_key=idempotency_key,
        )
    except SQLAlchemyError:
        logger.exception("Sync rate check failed for tenant %s; allowing request", tenant_id)
        return SlotClaim(allowed=True)


def release_sync_rate(db: Session, tenant_id: UUID, idempotency_key: str) -> None:
    try:
        RateLimitRepository(db).release_sync_claim(tenant_id, idempotency_key)
    except SQLAlchemyError:
        logger.exception("Could not release sync slot for tenant %s", tenant_id)


def check_ai_rate(db: Session, tenant_id: UUID) -> SlotClaim:
    """Reserve an AI mapping call.  Fails open like :func:`check_sync_rate`."""
    try:
        return RateLimitRepository(db).claim_ai_slot(
            tenant_id,
            max_per_hour=settings.AI_RATE_LIMIT_PER_HOUR,
        )
    except SQLAlchemyError:
        logger.exception("AI rate check failed for tenant %s; allowing request", tenant_id)
        return SlotClaim(allowed=True)


def enforce_ai_rate(db: Session, tenant_id: UUID) -> None:
    claim = check_ai_rate(db, tenant_id)
    if not claim.allowed:
        raise RateLimited("AI mapping rate limit exceeded", retry_after=claim.retry_after)
