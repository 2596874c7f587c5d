"""Tests for worker background tasks and cron job registration."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from arq.connections import RedisSettings

from erpsync.core.config import settings
from erpsync.core.database import get_db
from erpsync.core.idempotency import record_idempotency
from erpsync.models.idempotency_key import IdempotencyKey
from erpsync.models.shared import DEFAULT_TENANT_ID, utc_now
from erpsync.models.sync_job import SyncJob, SyncJobStatus
from erpsync.repositories.sync_job_repository import SyncJobRepository
from erpsync.services.sync_engine import RetrySummary
from erpsync.worker import (
    WorkerSettings,
    purge_idempotency_keys_task,
    refresh_expiring_tokens_task,
    retry_sync_jobs_task,
)
from tests.conftest import create_integration


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class TestRetrySyncJobsTask:
    @pytest.mark.asyncio
    async def test_returns_retried_count(self):
        mock_engine = MagicMock()
        mock_engine.retry_due_jobs = AsyncMock(
            return_value=RetrySummary(retried=3, succeeded=2, failed=1)
        )

        with patch("erpsync.worker.SyncEngine", return_value=mock_engine):
            result = await retry_sync_jobs_task({})

        assert result == 3
        mock_engine.retry_due_jobs.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_due_job_end_to_end(self, db_session):
        integration = create_integration(db_session)
        job = SyncJobRepository(db_session).create(
            integration_id=integration.id,
            tenant_id=integration.tenant_id,
            entity_type="orders",
            direction="import",
        )
        job.status = SyncJobStatus.RETRYING.value
        job.retry_count = 1
        job.next_retry_at = utc_now() - timedelta(minutes=1)
        db_session.commit()

        result = await retry_sync_jobs_task({})

        assert result == 1
        db_session.expire_all()
        assert db_session.get(SyncJob, job.id).status == SyncJobStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_nothing_due(self):
        assert await retry_sync_jobs_task({}) == 0


class TestRefreshExpiringTokensTask:
    @pytest.mark.asyncio
    async def test_returns_refreshed_count(self):
        mock_service = MagicMock()
        mock_service.refresh_expiring = AsyncMock(return_value=2)

        with patch("erpsync.worker.TokenLifecycleService", return_value=mock_service):
            result = await refresh_expiring_tokens_task({})

        assert result == 2

    @pytest.mark.asyncio
    async def test_returns_zero_when_nothing_expires(self):
        assert await refresh_expiring_tokens_task({}) == 0


class TestPurgeIdempotencyKeysTask:
    @pytest.mark.asyncio
    async def test_purges_only_expired_keys(self, db_session):
        record_idempotency(db_session, "fresh", DEFAULT_TENANT_ID)
        db_session.add(
            IdempotencyKey(
                tenant_id=DEFAULT_TENANT_ID,
                key="stale",
                created_at=utc_now() - timedelta(hours=25),
            )
        )
        db_session.commit()

        result = await purge_idempotency_keys_task({})

        assert result == 1
        db_session.expire_all()
        assert [k.key for k in db_session.query(IdempotencyKey).all()] == ["fresh"]


class TestWorkerSettings:
    def test_functions_registered(self):
        assert WorkerSettings.functions == [
            retry_sync_jobs_task,
            refresh_expiring_tokens_task,
            purge_idempotency_keys_task,
        ]

    def test_cron_jobs(self):
        assert len(WorkerSettings.cron_jobs) == 3
        by_name = {job.coroutine.__name__: job for job in WorkerSettings.cron_jobs}
        assert by_name["retry_sync_jobs_task"].minute == set(range(0, 60, 5))
        assert by_name["refresh_expiring_tokens_task"].minute == set(range(0, 60, 10))
        assert by_name["purge_idempotency_keys_task"].minute == {0}

    def test_redis_settings_follow_config(self):
        expected = RedisSettings.from_dsn(settings.REDIS_URL)
        assert WorkerSettings.redis_settings.host == expected.host
        assert WorkerSettings.redis_settings.port == expected.port
