import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from erpsync.core.config import settings
from erpsync.core.errors import (
    GENERIC_FAILURE_MESSAGE,
    ErpSyncError,
    RateLimited,
    sanitize_error,
)
from erpsync.core.responses import erp_error
from erpsync.routers import audit_logs, field_mappings, integrations, sync, webhooks

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Integrations", "description": "Connect, test, disable and refresh ERP integrations."},
    {"name": "Field Mappings", "description": "Entity toggles and local-to-ERP field mappings."},
    {"name": "Sync", "description": "Run sync jobs and inspect their history."},
    {"name": "Webhooks", "description": "Signed inbound events from ERP systems."},
    {"name": "Audit Logs", "description": "Query the tenant audit trail."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "ERP integration control plane. "
        "Connect ERP systems, manage credentials and field mappings, "
        "and run rate-limited, idempotent sync jobs."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


@app.exception_handler(ErpSyncError)
async def erp_sync_error_handler(request: Request, exc: ErpSyncError) -> Response:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
    rate_limited = isinstance(exc, RateLimited)
    return erp_error(
        sanitize_error(exc),
        exc.status_code,
        rate_limited=rate_limited,
        retry_after=exc.retry_after if isinstance(exc, RateLimited) else None,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Invalid request"
    if fields:
        message = f"Invalid request: check {', '.join(fields)}"
    return erp_error(message, 400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return erp_error(GENERIC_FAILURE_MESSAGE, 500)


app.include_router(integrations.router, prefix="/v1/erp", tags=["Integrations"])
app.include_router(field_mappings.router, prefix="/v1/erp", tags=["Field Mappings"])
app.include_router(sync.router, prefix="/v1/erp", tags=["Sync"])
app.include_router(webhooks.router, prefix="/v1/erp", tags=["Webhooks"])
app.include_router(audit_logs.router, prefix="/v1/erp", tags=["Audit Logs"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
