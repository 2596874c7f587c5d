"""Inbound webhooks from ERP systems (signature-authenticated, no bearer token)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from erpsync.core.database import get_db
from erpsync.core.responses import erp_response
from erpsync.services.erp_webhook_service import SIGNATURE_HEADER, ErpWebhookService

router = APIRouter()


@router.post(
    "/webhooks/{integration_id}",
    summary="Receive an ERP webhook",
    responses={
        400: {"description": "Malformed payload or unsupported event"},
        401: {"description": "Invalid webhook signature"},
        404: {"description": "Integration not found"},
    },
)
async def receive_webhook(
    integration_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
) -> JSONResponse:
    body = await request.body()
    job = ErpWebhookService(db).handle(
        integration_id, body, request.headers.get(SIGNATURE_HEADER)
    )
    return erp_response(True, "Webhook processed successfully", {"job_id": str(job.id)})
