"""ERP integration endpoints: connect, test, disable, token refresh."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext, require_erp_admin, require_erp_admin_or_system
from erpsync.core.database import get_db
from erpsync.core.idempotency import check_idempotency, get_idempotency_key, record_idempotency
from erpsync.core.responses import erp_response
from erpsync.models.integration import Integration
from erpsync.repositories.integration_repository import IntegrationRepository
from erpsync.schemas.integration import ConnectRequest, IntegrationResponse, RefreshTokenRequest
from erpsync.services.connection_service import ConnectionService, load_integration
from erpsync.services.token_lifecycle import TokenLifecycleService

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"description": "Missing or invalid credentials"},
    403: {"description": "Caller lacks an ERP admin role or does not own the integration"},
}


def _serialize(integration: Integration) -> dict[str, Any]:
    return IntegrationResponse.model_validate(integration).model_dump(mode="json")


@router.post(
    "/connect",
    summary="Connect an ERP system",
    responses={**ERROR_RESPONSES, 400: {"description": "Connection test failed"}},
)
async def connect(
    data: ConnectRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    """Probe the ERP and store the integration with encrypted credentials."""
    idempotency_key = get_idempotency_key(request)
    if idempotency_key and check_idempotency(db, idempotency_key, auth.tenant_id):  # type: ignore[arg-type]
        return erp_response(True, "Request already processed", {"idempotent": True})

    integration, result = await ConnectionService(db).connect(auth, data)

    if idempotency_key:
        record_idempotency(db, idempotency_key, auth.tenant_id)  # type: ignore[arg-type]
    return erp_response(
        True,
        "ERP connected successfully",
        {"integration": _serialize(integration), "entities": result.entities},
    )


@router.get("/integrations", summary="List integrations", responses=ERROR_RESPONSES)
async def list_integrations(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    integrations = IntegrationRepository(db).get_all(auth.tenant_id, skip=skip, limit=limit)  # type: ignore[arg-type]
    return erp_response(
        True,
        "Integrations retrieved",
        {"integrations": [_serialize(i) for i in integrations]},
    )


@router.get(
    "/integrations/{integration_id}",
    summary="Get integration",
    responses={**ERROR_RESPONSES, 404: {"description": "Integration not found"}},
)
async def get_integration(
    integration_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    integration = load_integration(db, auth, integration_id)
    return erp_response(True, "Integration retrieved", {"integration": _serialize(integration)})


@router.post(
    "/integrations/{integration_id}/test",
    summary="Re-test a stored integration",
    responses={**ERROR_RESPONSES, 404: {"description": "Integration not found"}},
)
async def test_integration(
    integration_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    integration, result = await ConnectionService(db).test(auth, integration_id)
    return erp_response(
        result.success,
        "Connection test succeeded" if result.success else result.message,
        {"integration": _serialize(integration)},
        status_code=200 if result.success else 400,
    )


@router.delete(
    "/integrations/{integration_id}",
    summary="Disable integration",
    responses={**ERROR_RESPONSES, 404: {"description": "Integration not found"}},
)
async def disable_integration(
    integration_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    """Soft-disable; the row and its sync history are kept."""
    integration = ConnectionService(db).disable(auth, integration_id)
    return erp_response(True, "Integration disabled", {"integration": _serialize(integration)})


@router.post(
    "/refresh-token",
    summary="Refresh OAuth tokens",
    responses={**ERROR_RESPONSES, 400: {"description": "Token refresh failed or unsupported"}},
)
async def refresh_token(
    data: RefreshTokenRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin_or_system),
) -> JSONResponse:
    integration = load_integration(db, auth, data.integration_id)
    outcome = await TokenLifecycleService(db).refresh_now(integration, auth.performed_by)
    return erp_response(
        True,
        "Token refreshed successfully",
        {"refreshed": outcome.refreshed, "expires_at": outcome.expires_at},
    )
