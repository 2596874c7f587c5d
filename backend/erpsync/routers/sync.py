"""Sync endpoints: run, retry and inspect sync jobs."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from erpsync.core.auth import (
    AuthContext,
    require_erp_admin,
    require_erp_admin_or_system,
    require_system,
)
from erpsync.core.database import get_db
from erpsync.core.errors import NotFound
from erpsync.core.idempotency import get_idempotency_key
from erpsync.core.responses import erp_response
from erpsync.models.sync_job import SyncJobStatus
from erpsync.repositories.sync_job_repository import SyncJobRepository
from erpsync.schemas.sync_job import SyncJobResponse, SyncRequest
from erpsync.services.sync_engine import SyncEngine

router = APIRouter()


@router.post(
    "/sync",
    summary="Run a sync",
    responses={
        400: {"description": "Missing Idempotency-Key, disabled integration or token failure"},
        401: {"description": "Missing or invalid credentials"},
        403: {"description": "Integration belongs to another tenant"},
        404: {"description": "Integration or entity not found"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def run_sync(
    data: SyncRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin_or_system),
) -> JSONResponse:
    """Import and/or export one entity type.

    User calls require an ``Idempotency-Key``; a repeated key returns
    ``{"idempotent": true}`` without running again.
    """
    idempotency_key = None if auth.is_system else get_idempotency_key(request, required=True)
    outcome = await SyncEngine(db).run(auth, data, idempotency_key)
    if outcome.idempotent:
        return erp_response(True, "Request already processed", {"idempotent": True})
    return erp_response(
        True,
        "Sync completed successfully",
        {"job": SyncJobResponse.model_validate(outcome.job).model_dump(mode="json")},
    )


@router.post("/sync/retry", summary="Retry due sync jobs")
async def retry_sync_jobs(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_system),
) -> JSONResponse:
    summary = await SyncEngine(db).retry_due_jobs()
    return erp_response(
        True,
        "Retry pass finished",
        {"retried": summary.retried, "succeeded": summary.succeeded, "failed": summary.failed},
    )


@router.get("/sync-jobs", summary="List sync jobs")
async def list_sync_jobs(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    integration_id: UUID | None = None,
    status: SyncJobStatus | None = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    jobs = SyncJobRepository(db).get_all(
        auth.tenant_id,  # type: ignore[arg-type]
        skip=skip,
        limit=limit,
        integration_id=integration_id,
        status=status.value if status else None,
    )
    payload: dict[str, Any] = {
        "jobs": [SyncJobResponse.model_validate(j).model_dump(mode="json") for j in jobs]
    }
    return erp_response(True, "Sync jobs retrieved", payload)


@router.get("/sync-jobs/{job_id}", summary="Get sync job")
async def get_sync_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_erp_admin),
) -> JSONResponse:
    job = SyncJobRepository(db).get_by_id(job_id, auth.tenant_id)
    if job is None:
        raise NotFound("Sync job not found")
    return erp_response(
        True,
        "Sync job retrieved",
        {"job": SyncJobResponse.model_validate(job).model_dump(mode="json")},
    )
