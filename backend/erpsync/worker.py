import logging
from typing import Any

from arq import cron
from arq.connections import RedisSettings

from erpsync.core.config import settings
from erpsync.core.database import session_scope
from erpsync.core.idempotency import purge_expired
from erpsync.services.sync_engine import SyncEngine
from erpsync.services.token_lifecycle import TokenLifecycleService

logger = logging.getLogger(__name__)

redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def retry_sync_jobs_task(ctx: dict[str, Any]) -> int:
    """Background task: re-run sync jobs in ``retrying`` whose backoff has elapsed.

    Runs every 5 minutes.  Jobs that exhaust their retries move to
    ``dead_letter`` and are not picked up again.
    """
    with session_scope() as db:
        summary = await SyncEngine(db).retry_due_jobs()
        return summary.retried


async def refresh_expiring_tokens_task(ctx: dict[str, Any]) -> int:
    """Background task: refresh OAuth tokens about to expire.

    Runs every 10 minutes.
    """
    with session_scope() as db:
        count = await TokenLifecycleService(db).refresh_expiring()
        if count > 0:
            logger.info("Refreshed tokens for %d integrations", count)
        return count


async def purge_idempotency_keys_task(ctx: dict[str, Any]) -> int:
    """Background task: drop idempotency keys past their TTL.  Runs hourly."""
    with session_scope() as db:
        return purge_expired(db)


class WorkerSettings:
    functions = [
        retry_sync_jobs_task,
        refresh_expiring_tokens_task,
        purge_idempotency_keys_task,
    ]
    cron_jobs = [
        cron(
            retry_sync_jobs_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
        cron(refresh_expiring_tokens_task, minute={0, 10, 20, 30, 40, 50}),
        cron(purge_idempotency_keys_task, minute={0}),  # hourly
    ]
    redis_settings = redis_settings
