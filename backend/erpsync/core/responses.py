"""Uniform response envelope for ERP endpoints.

Every ERP endpoint answers with
``{success, message, rateLimited, timestamp, ...extra}``.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def erp_response(
    success: bool,
    message: str,
    data: dict[str, Any] | None = None,
    status_code: int = 200,
    rate_limited: bool = False,
) -> JSONResponse:
    body: dict[str, Any] = {
        "success": success,
        "message": message,
        "rateLimited": rate_limited,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if data:
        body.update(jsonable_encoder(data))
    return JSONResponse(content=body, status_code=status_code)


def erp_error(
    message: str,
    status_code: int,
    rate_limited: bool = False,
    retry_after: int | None = None,
) -> JSONResponse:
    response = erp_response(
        False,
        message,
        status_code=status_code,
        rate_limited=rate_limited,
    )
    if retry_after is not None:
        response.headers["Retry-After"] = str(retry_after)
    return response
