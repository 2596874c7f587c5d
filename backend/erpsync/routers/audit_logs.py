"""Audit log API endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from erpsync.core.auth import AuthContext, require_erp_admin
from erpsync.core.database import get_db
from erpsync.core.responses import erp_response
from erpsync.repositories.audit_log_repository import AuditLogRepository
from erpsync.schemas.audit_log import AuditLogResponse

router = APIRouter()


@router.get(
    "/audit-logs",
    summary="List audit logs",
    responses={401: {"description": "Missing or invalid credentials"}},
)
async def list_audit_logs(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    action_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    """List the caller's tenant audit trail, newest first."""
    logs = AuditLogRepository(db).get_all(
        auth.tenant_id,  # type: ignore[arg-type]
        skip=skip,
        limit=limit,
        action_type=action_type,
        start_date=start_date,
        end_date=end_date,
    )
    return erp_response(
        True,
        "Audit logs retrieved",
        {"audit_logs": [AuditLogResponse.model_validate(log).model_dump(mode="json") for log in logs]},
    )
