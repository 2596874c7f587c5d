"""Inbound ERP webhooks.

Requests are authenticated by an HMAC-SHA256 of the raw body keyed with the
integration's webhook secret.  Each accepted event is recorded as a
completed single-record import job.
"""

import hashlib
import hmac
import logging
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from erpsync.core.errors import NotFound, Unauthenticated, ValidationError
from erpsync.core.vault import CredentialVault, VaultError, get_vault
from erpsync.models.audit_log import AuditActionType
from erpsync.models.integration import Integration
from erpsync.models.sync_job import SyncDirection, SyncJob
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.repositories.sync_job_repository import SyncJobRepository
from erpsync.schemas.webhook import WEBHOOK_EVENT_ENTITIES, WebhookEvent
from erpsync.services.audit_service import AuditService
from erpsync.services.sync_phases import (
    RECORD_ID_FIELD,
    FieldMapper,
    MappingError,
    NullRecordStore,
    RecordStore,
    incoming_wins,
)
from erpsync.services.sync_state import SyncJobStateMachine

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class ErpWebhookService:
    def __init__(
        self,
        db: Session,
        vault: CredentialVault | None = None,
        record_store: RecordStore | None = None,
    ):
        self.db = db
        self._vault = vault
        self.record_store: RecordStore = record_store or NullRecordStore()
        self.audit = AuditService(db)

    def _verify(self, integration: Integration, body: bytes, signature: str | None) -> None:
        if not signature or not integration.webhook_secret_encrypted:
            raise Unauthenticated("Invalid webhook signature")
        try:
            secret = (self._vault or get_vault()).decrypt(str(integration.webhook_secret_encrypted))
        except VaultError:
            logger.exception("Cannot decrypt webhook secret for integration %s", integration.id)
            raise Unauthenticated("Invalid webhook signature") from None
        provided = signature.strip()
        if provided.startswith("sha256="):
            provided = provided[len("sha256=") :]
        if not hmac.compare_digest(compute_signature(secret, body), provided):
            raise Unauthenticated("Invalid webhook signature")

    def handle(self, integration_id: UUID, body: bytes, signature: str | None) -> SyncJob:
        integration = IntegrationRepository(self.db).get_by_id(integration_id)
        if integration is None:
            raise NotFound("Integration not found")

        try:
            self._verify(integration, body, signature)
        except Unauthenticated:
            self.audit.record(
                integration.tenant_id,  # type: ignore[arg-type]
                None,
                AuditActionType.ERP_WEBHOOK_REJECTED,
                {"integration_id": integration.id},
            )
            logger.warning("Rejected webhook for integration %s: bad signature", integration.id)
            raise

        try:
            event = WebhookEvent.model_validate_json(body)
        except PydanticValidationError:
            raise ValidationError("Invalid request: malformed webhook payload") from None

        entity_type = WEBHOOK_EVENT_ENTITIES.get(event.event_type)
        if entity_type is None:
            raise ValidationError(f"Invalid request: unsupported event type {event.event_type}")
        if not integration.is_active:
            raise ValidationError("Integration is disabled")

        succeeded = self._import_record(integration, entity_type, event)

        job = SyncJobRepository(self.db).create(
            integration_id=UUID(str(integration.id)),
            tenant_id=UUID(str(integration.tenant_id)),
            entity_type=entity_type,
            direction=SyncDirection.IMPORT.value,
            is_manual=False,
        )
        machine = SyncJobStateMachine(self.db, job)
        machine.created()
        machine.start()
        machine.complete(processed=1, succeeded=int(succeeded), failed=int(not succeeded))

        self.audit.record(
            integration.tenant_id,  # type: ignore[arg-type]
            None,
            AuditActionType.ERP_WEBHOOK_RECEIVED,
            {
                "integration_id": integration.id,
                "event_type": event.event_type,
                "job_id": job.id,
            },
        )
        return machine.job

    def _import_record(self, integration: Integration, entity_type: str, event: WebhookEvent) -> bool:
        entity = ErpEntityRepository(self.db).get(UUID(str(integration.id)), entity_type)
        if entity is None or not entity.is_enabled:
            return False
        mapper = FieldMapper.from_models(
            FieldMappingRepository(self.db).get_for_entity(UUID(str(entity.id)))
        )
        external_id = event.external_id or event.data.get(RECORD_ID_FIELD)
        if external_id is None:
            return False
        try:
            local = mapper.to_local(event.data)
        except MappingError as e:
            logger.info("Webhook %s record %s not imported: %s", entity_type, external_id, e)
            return False
        local[RECORD_ID_FIELD] = str(external_id)
        if incoming_wins(self.record_store.get(entity_type, str(external_id)), local):
            self.record_store.upsert(entity_type, str(external_id), local)
        return True
