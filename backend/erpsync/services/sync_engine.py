"""Sync orchestration: admission, token freshness, job lifecycle, phases."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext
from erpsync.core.config import settings
from erpsync.core.errors import (
    InternalError,
    NotFound,
    RateLimited,
    TokenRefreshFailed,
    ValidationError,
    sanitize_error,
)
from erpsync.core.idempotency import check_idempotency, record_idempotency
from erpsync.core.rate_limiter import check_sync_rate, release_sync_rate
from erpsync.core.vault import CredentialVault, get_vault
from erpsync.models.erp_entity import ErpEntity
from erpsync.models.integration import Integration
from erpsync.models.shared import as_utc, utc_now
from erpsync.models.sync_job import SyncDirection, SyncJob, SyncJobStatus
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.repositories.sync_job_repository import SyncJobRepository
from erpsync.schemas.sync_job import SyncRequest
from erpsync.services.connection_service import context_from_integration, load_integration
from erpsync.services.erp_adapters.base import get_erp_adapter
from erpsync.services.sync_phases import (
    FieldMapper,
    NullRecordStore,
    PhaseResult,
    RecordStore,
    run_export,
    run_import,
)
from erpsync.services.sync_state import SyncJobStateMachine
from erpsync.services.token_lifecycle import TokenLifecycleService

logger = logging.getLogger(__name__)

IMPORT_DIRECTIONS = {SyncDirection.IMPORT.value, SyncDirection.BIDIRECTIONAL.value}
EXPORT_DIRECTIONS = {SyncDirection.EXPORT.value, SyncDirection.BIDIRECTIONAL.value}
FAILED_STATUSES = {SyncJobStatus.RETRYING.value, SyncJobStatus.DEAD_LETTER.value}


@dataclass
class SyncOutcome:
    """Result of a sync request; ``idempotent`` means nothing was executed."""

    job: SyncJob | None = None
    idempotent: bool = False


@dataclass
class RetrySummary:
    retried: int = 0
    succeeded: int = 0
    failed: int = 0


class SyncEngine:
    def __init__(
        self,
        db: Session,
        vault: CredentialVault | None = None,
        record_store: RecordStore | None = None,
    ):
        self.db = db
        self._vault = vault
        self.record_store: RecordStore = record_store or NullRecordStore()
        self.jobs = SyncJobRepository(db)
        self.integrations = IntegrationRepository(db)
        self.entities = ErpEntityRepository(db)

    @property
    def vault(self) -> CredentialVault:
        if self._vault is None:
            self._vault = get_vault()
        return self._vault

    def _admit(self, integration: Integration, idempotency_key: str | None) -> bool:
        """Idempotency and rate-limit gate for user calls.  False means "already handled"."""
        if not idempotency_key:
            raise ValidationError("Idempotency-Key header is required")
        tenant_id = UUID(str(integration.tenant_id))

        if check_idempotency(self.db, idempotency_key, tenant_id):
            return False

        claim = check_sync_rate(self.db, tenant_id, idempotency_key)
        if claim.duplicate:
            latest = self.jobs.get_latest_for_key(tenant_id, idempotency_key)
            if latest is not None and latest.status in FAILED_STATUSES:
                raise RateLimited(
                    "Rate limit exceeded. Please wait before syncing again.",
                    retry_after=settings.SYNC_COOLDOWN_SECONDS,
                )
            return False
        if not claim.allowed:
            raise RateLimited(
                "Rate limit exceeded. Please wait before syncing again.",
                retry_after=claim.retry_after,
            )
        return True

    def _resolve_entity(self, integration: Integration, entity_type: str) -> ErpEntity:
        if not integration.is_active:
            raise ValidationError("Integration is disabled")
        entity = self.entities.get(UUID(str(integration.id)), entity_type)
        if entity is None:
            raise NotFound("Entity not found")
        if not entity.is_enabled:
            raise ValidationError("Entity is disabled")
        return entity

    async def _prepare(
        self, integration: Integration, entity_type: str, auth: AuthContext
    ) -> ErpEntity:
        entity = self._resolve_entity(integration, entity_type)
        try:
            await TokenLifecycleService(self.db, self._vault).ensure_fresh(
                integration, auth.performed_by
            )
        except TokenRefreshFailed:
            raise TokenRefreshFailed("Token validation failed") from None
        return entity

    async def run(
        self,
        auth: AuthContext,
        request: SyncRequest,
        idempotency_key: str | None = None,
    ) -> SyncOutcome:
        """Run one sync for ``request.entity_type``.

        Guards run in order: tenant ownership, idempotency and rate limit
        (user calls only), integration/entity state, token freshness.  Only
        then is a job row created.
        """
        integration = load_integration(self.db, auth, request.integration_id)
        tenant_id = UUID(str(integration.tenant_id))

        claimed = not auth.is_system
        if claimed and not self._admit(integration, idempotency_key):
            return SyncOutcome(idempotent=True)

        try:
            entity = await self._prepare(integration, request.entity_type.value, auth)
        except Exception:
            # no job exists yet, so a retry with this key must not look like a duplicate
            if claimed and idempotency_key:
                release_sync_rate(self.db, tenant_id, idempotency_key)
            raise

        job = self.jobs.create(
            integration_id=UUID(str(integration.id)),
            tenant_id=tenant_id,
            entity_type=request.entity_type.value,
            direction=request.direction.value,
            triggered_by=auth.performed_by,
            is_manual=not auth.is_system,
            idempotency_key=idempotency_key,
        )
        machine = SyncJobStateMachine(self.db, job, auth.performed_by)
        machine.created()
        machine.start()

        try:
            await self._execute(machine, integration, entity)
        except Exception as e:
            self._fail(machine, e)
            raise InternalError(sanitize_error(e)) from e

        if idempotency_key and not auth.is_system:
            record_idempotency(self.db, idempotency_key, tenant_id)
        return SyncOutcome(job=machine.job)

    async def _execute(
        self,
        machine: SyncJobStateMachine,
        integration: Integration,
        entity: ErpEntity,
    ) -> SyncJob:
        """Run the phases for an ``in_progress`` job and complete it."""
        job = machine.job
        adapter = get_erp_adapter(str(integration.erp_system))
        ctx = context_from_integration(integration, self.vault)
        mapper = FieldMapper.from_models(
            FieldMappingRepository(self.db).get_for_entity(UUID(str(entity.id)))
        )
        since = as_utc(integration.last_sync_at)  # type: ignore[arg-type]
        entity_type = str(entity.entity_type)
        erp_name = str(entity.erp_entity_name or entity_type)

        totals = PhaseResult()
        if job.direction in IMPORT_DIRECTIONS:
            totals += await run_import(
                adapter, ctx, entity_type, erp_name, mapper, self.record_store, since
            )
        if job.direction in EXPORT_DIRECTIONS:
            totals += await run_export(
                adapter, ctx, entity_type, erp_name, mapper, self.record_store, since
            )

        now = utc_now()
        self.integrations.update(integration, last_sync_at=now)
        machine.complete(totals.processed, totals.succeeded, totals.failed, now=now)
        return machine.job

    def _fail(self, machine: SyncJobStateMachine, error: Exception) -> None:
        if isinstance(error, SQLAlchemyError):
            self.db.rollback()
        logger.warning(
            "Sync job %s attempt failed: %r", machine.job.id, error, exc_info=True
        )
        if not machine.can_transition(SyncJobStatus.RETRYING):
            logger.error(
                "Sync job %s is already %s; not recording failure",
                machine.job.id,
                machine.status.value,
            )
            return
        machine.fail(sanitize_error(error))

    async def retry_job(self, job: SyncJob) -> bool:
        """Re-run a ``retrying`` job on the same row.  Returns True on success.

        A token refresh failure during a retry counts as a failed attempt.
        """
        integration = self.integrations.get_by_id(UUID(str(job.integration_id)))
        machine = SyncJobStateMachine(self.db, job, performed_by=None)
        machine.start()
        try:
            if integration is None:
                raise NotFound("Integration not found")
            entity = self._resolve_entity(integration, str(job.entity_type))
            await TokenLifecycleService(self.db, self._vault).ensure_fresh(integration)
            await self._execute(machine, integration, entity)
        except Exception as e:
            self._fail(machine, e)
            return False
        return True

    async def retry_due_jobs(self, now: datetime | None = None) -> RetrySummary:
        """Retry every ``retrying`` job whose backoff has elapsed."""
        summary = RetrySummary()
        for job in self.jobs.get_due_for_retry(now or utc_now()):
            summary.retried += 1
            if await self.retry_job(job):
                summary.succeeded += 1
            else:
                summary.failed += 1
        if summary.retried:
            logger.info(
                "Retried %d sync jobs: %d succeeded, %d failed",
                summary.retried,
                summary.succeeded,
                summary.failed,
            )
        return summary
