"""Atomic per-tenant rate-limit claims.

Each claim is a single read-modify-write transaction: the tenant row is
created if missing (``INSERT ... ON CONFLICT DO NOTHING``), locked with
``SELECT ... FOR UPDATE``, evaluated, updated and committed.  Concurrent
callers for the same tenant wait on the lock, so two of them can never both
consume the last slot.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erpsync.core.database import insert_for
from erpsync.models.rate_limit_state import AIRateState, SyncRateState
from erpsync.models.shared import as_utc, utc_now

HOUR = timedelta(hours=1)


@dataclass
class SlotClaim:
    """Outcome of a rate-limit claim."""

    allowed: bool
    retry_after: int = 0
    duplicate: bool = False


def _seconds_until(moment: datetime, now: datetime) -> int:
    return max(1, math.ceil((moment - now).total_seconds()))


class RateLimitRepository:
    def __init__(self, db: Session):
        self.db = db

    def _lock_row(self, model: type, tenant_id: UUID, defaults: dict[str, object]) -> object:
        self.db.execute(
            insert_for(self.db, model)
            .values(tenant_id=tenant_id, **defaults)
            .on_conflict_do_nothing(index_elements=["tenant_id"])
        )
        return (
            self.db.query(model)
            .filter(model.tenant_id == tenant_id)  # type: ignore[attr-defined]
            .with_for_update()
            .one()
        )

    def claim_sync_slot(
        self,
        tenant_id: UUID,
        *,
        cooldown_seconds: int,
        max_per_hour: int,
        idempotency_key: str | None = None,
        now: datetime | None = None,
    ) -> SlotClaim:
        """Claim a sync slot: one per cooldown window and *max_per_hour* per hour.

        A call carrying the idempotency key that claimed the current cooldown
        slot is reported as a duplicate instead of being rate limited.
        """
        now = now or utc_now()
        try:
            state: SyncRateState = self._lock_row(  # type: ignore[assignment]
                SyncRateState,
                tenant_id,
                {"last_sync_at": None, "sync_count_1h": 0, "window_start_1h": now},
            )

            window_start = as_utc(state.window_start_1h) or now  # type: ignore[arg-type]
            count = int(state.sync_count_1h)
            if window_start <= now - HOUR:
                window_start = now
                count = 0

            last_sync_at = as_utc(state.last_sync_at)  # type: ignore[arg-type]
            cooldown = timedelta(seconds=cooldown_seconds)
            if last_sync_at is not None and last_sync_at > now - cooldown:
                is_duplicate = idempotency_key is not None and (
                    state.last_claim_key == idempotency_key
                )
                self.db.commit()
                if is_duplicate:
                    return SlotClaim(allowed=False, duplicate=True)
                return SlotClaim(
                    allowed=False, retry_after=_seconds_until(last_sync_at + cooldown, now)
                )

            if count >= max_per_hour:
                self.db.commit()
                return SlotClaim(
                    allowed=False, retry_after=_seconds_until(window_start + HOUR, now)
                )

            state.last_sync_at = now  # type: ignore[assignment]
            state.sync_count_1h = count + 1  # type: ignore[assignment]
            state.window_start_1h = window_start  # type: ignore[assignment]
            state.last_claim_key = idempotency_key  # type: ignore[assignment]
            self.db.commit()
            return SlotClaim(allowed=True)
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def release_sync_claim(self, tenant_id: UUID, idempotency_key: str) -> bool:
        """Hand back the slot claimed by *idempotency_key* if it still holds it.

        Used when a claimed request fails before any job exists, so that a
        retry with the same key is evaluated afresh.
        """
        try:
            state = (
                self.db.query(SyncRateState)
                .filter(SyncRateState.tenant_id == tenant_id)
                .with_for_update()
                .one_or_none()
            )
            if state is None or state.last_claim_key != idempotency_key:
                self.db.commit()
                return False
            state.last_claim_key = None  # type: ignore[assignment]
            state.last_sync_at = None  # type: ignore[assignment]
            state.sync_count_1h = max(0, int(state.sync_count_1h) - 1)  # type: ignore[assignment]
            self.db.commit()
            return True
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def claim_ai_slot(
        self,
        tenant_id: UUID,
        *,
        max_per_hour: int,
        now: datetime | None = None,
    ) -> SlotClaim:
        """Reserve one AI call for *tenant_id*; must run before the external call."""
        now = now or utc_now()
        try:
            state: AIRateState = self._lock_row(  # type: ignore[assignment]
                AIRateState,
                tenant_id,
                {"ai_count_1h": 0, "window_start_1h": now},
            )

            window_start = as_utc(state.window_start_1h) or now  # type: ignore[arg-type]
            count = int(state.ai_count_1h)
            if window_start <= now - HOUR:
                window_start = now
                count = 0

            if count >= max_per_hour:
                self.db.commit()
                return SlotClaim(
                    allowed=False, retry_after=_seconds_until(window_start + HOUR, now)
                )

            state.ai_count_1h = count + 1  # type: ignore[assignment]
            state.window_start_1h = window_start  # type: ignore[assignment]
            self.db.commit()
            return SlotClaim(allowed=True)
        except SQLAlchemyError:
            self.db.rollback()
            raise
