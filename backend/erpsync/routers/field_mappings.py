"""Entity toggles and field mappings for an integration."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext, require_erp_admin
from erpsync.core.database import get_db
from erpsync.core.errors import NotFound
from erpsync.core.responses import erp_response
from erpsync.models.audit_log import AuditActionType
from erpsync.models.erp_entity import EntityType, ErpEntity
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.schemas.erp_entity import ErpEntityResponse, ErpEntityUpdate
from erpsync.schemas.field_mapping import (
    FieldMappingReplace,
    FieldMappingResponse,
    SuggestMappingsRequest,
)
from erpsync.services.audit_service import AuditService
from erpsync.services.connection_service import load_integration
from erpsync.services.field_mapping_ai import FieldMappingAIService

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"description": "Missing or invalid credentials"},
    403: {"description": "Caller lacks an ERP admin role or does not own the integration"},
    404: {"description": "Integration or entity not found"},
}


def _get_entity_or_404(
    db: Session,
    auth: AuthContext,
    integration_id: UUID,
    entity_type: EntityType,
) -> ErpEntity:
    integration = load_integration(db, auth, integration_id)
    entity = ErpEntityRepository(db).get(UUID(str(integration.id)), entity_type.value)
    if entity is None:
        raise NotFound("Entity not found")
    return entity


@router.get(
    "/integrations/{integration_id}/entities",
    summary="List entities",
    responses=ERROR_RESPONSES,
)
async def list_entities(
    integration_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    integration = load_integration(db, auth, integration_id)
    entities = ErpEntityRepository(db).get_all(UUID(str(integration.id)))
    return erp_response(
        True,
        "Entities retrieved",
        {"entities": [ErpEntityResponse.model_validate(e).model_dump(mode="json") for e in entities]},
    )


@router.patch(
    "/integrations/{integration_id}/entities/{entity_type}",
    summary="Enable or disable an entity",
    responses=ERROR_RESPONSES,
)
async def update_entity(
    integration_id: UUID,
    entity_type: EntityType,
    data: ErpEntityUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    entity = _get_entity_or_404(db, auth, integration_id, entity_type)
    entity = ErpEntityRepository(db).set_enabled(entity, data.is_enabled)
    return erp_response(
        True,
        "Entity updated",
        {"entity": ErpEntityResponse.model_validate(entity).model_dump(mode="json")},
    )


@router.get(
    "/integrations/{integration_id}/entities/{entity_type}/field-mappings",
    summary="List field mappings",
    responses=ERROR_RESPONSES,
)
async def list_field_mappings(
    integration_id: UUID,
    entity_type: EntityType,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    entity = _get_entity_or_404(db, auth, integration_id, entity_type)
    mappings = FieldMappingRepository(db).get_for_entity(UUID(str(entity.id)))
    return erp_response(
        True,
        "Field mappings retrieved",
        {"mappings": [FieldMappingResponse.model_validate(m).model_dump(mode="json") for m in mappings]},
    )


@router.put(
    "/integrations/{integration_id}/entities/{entity_type}/field-mappings",
    summary="Replace field mappings",
    responses=ERROR_RESPONSES,
)
async def replace_field_mappings(
    integration_id: UUID,
    entity_type: EntityType,
    data: FieldMappingReplace,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    entity = _get_entity_or_404(db, auth, integration_id, entity_type)
    items = []
    for item in data.mappings:
        values = item.model_dump()
        if item.transform_function is not None:
            values["transform_function"] = item.transform_function.value
        items.append(values)
    mappings = FieldMappingRepository(db).replace_all(UUID(str(entity.id)), items)
    AuditService(db).record(
        auth.tenant_id,
        auth.performed_by,
        AuditActionType.ERP_FIELD_MAPPING_UPDATE,
        {"integration_id": integration_id, "entity_type": entity_type, "count": len(mappings)},
    )
    return erp_response(
        True,
        "Field mappings updated",
        {"mappings": [FieldMappingResponse.model_validate(m).model_dump(mode="json") for m in mappings]},
    )


@router.post(
    "/integrations/{integration_id}/entities/{entity_type}/field-mappings/suggest",
    summary="Suggest field mappings with AI",
    responses={**ERROR_RESPONSES, 429: {"description": "AI mapping rate limit exceeded"}},
)
async def suggest_field_mappings(
    integration_id: UUID,
    entity_type: EntityType,
    data: SuggestMappingsRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    suggestions = await FieldMappingAIService(db).suggest(
        auth, integration_id, entity_type.value, data
    )
    return erp_response(
        True,
        "AI field mapping suggestions generated successfully",
        {"suggestions": [s.model_dump(mode="json") for s in suggestions]},
    )
