"""Error taxonomy for the ERP control plane.

Every error carries the HTTP status it maps to.  Messages are written for the
caller; :func:`sanitize_error` decides whether a message may cross the API
boundary verbatim.
"""

GENERIC_FAILURE_MESSAGE = "Operation failed. Please try again or contact support."

# Only messages starting with one of these are echoed to the caller.
SAFE_PREFIXES = (
    "Missing Authorization",
    "Invalid or expired",
    "No tenant found",
    "Forbidden:",
    "Integration not found",
    "Integration is disabled",
    "Entity not found",
    "Entity is disabled",
    "Sync job not found",
    "Token validation failed",
    "Token refresh not supported",
    "Token refresh failed",
    "Unsupported ERP system",
    "Rate limit exceeded",
    "AI mapping rate limit",
    "AI mapping failed",
    "Idempotency-Key header",
    "Duplicate request",
    "Missing required fields",
    "Invalid request",
    "Invalid webhook signature",
    "Connection test failed",
    "ERP system did not respond",
    "ERP system rejected",
)


class ErpSyncError(Exception):
    """Base class for errors raised by the control plane."""

    status_code = 500

    def __init__(self, message: str = GENERIC_FAILURE_MESSAGE):
        super().__init__(message)
        self.message = message


class Unauthenticated(ErpSyncError):
    status_code = 401


class Forbidden(ErpSyncError):
    status_code = 403


class NotFound(ErpSyncError):
    status_code = 404


class ValidationError(ErpSyncError):
    status_code = 400


class RateLimited(ErpSyncError):
    """Retryable; ``retry_after`` (seconds) is disclosed to the caller."""

    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamTimeout(ErpSyncError):
    """An ERP call exceeded its hard timeout.  Transient."""

    status_code = 502

    def __init__(self, message: str = "ERP system did not respond in time"):
        super().__init__(message)


class UpstreamRejected(ErpSyncError):
    """An ERP call returned a non-2xx answer.  Transient."""

    status_code = 502

    def __init__(self, message: str = "ERP system rejected the request", status: int | None = None):
        super().__init__(message)
        self.upstream_status = status


class TokenRefreshFailed(ErpSyncError):
    """OAuth refresh failed; the integration needs re-authorisation."""

    status_code = 400

    def __init__(self, message: str = "Token refresh failed"):
        super().__init__(message)


class InternalError(ErpSyncError):
    status_code = 500


def sanitize_error(exc: BaseException) -> str:
    """Return a message that is safe to show to the caller.

    Anything not matching an allow-listed prefix (database errors, network
    errors, credential errors) collapses to a generic message.
    """
    message = getattr(exc, "message", None) or str(exc)
    if isinstance(exc, ErpSyncError) and message.startswith(SAFE_PREFIXES):
        return message
    return GENERIC_FAILURE_MESSAGE
