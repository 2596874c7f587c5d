"""ERP adapter base class and factory.

Defines the abstract ErpAdapter interface that every ERP system implements:
a bounded-timeout connection probe, an optional OAuth refresh grant, and the
default entity / field bindings seeded when an integration is connected.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from erpsync.core.config import settings
from erpsync.core.errors import (
    TokenRefreshFailed,
    UpstreamRejected,
    UpstreamTimeout,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 3600


@dataclass
class ConnectionContext:
    """Decrypted connection material for the duration of one external call.

    Built from an Integration (or a connect request) right before the call
    and dropped afterwards; it is never written back to the database.
    """

    erp_system: str
    api_endpoint: str = ""
    credentials: dict[str, Any] = field(default_factory=dict)
    access_token: str | None = None
    refresh_token: str | None = None
    oauth_config: dict[str, Any] = field(default_factory=dict)
    client_secret: str | None = None

    def __repr__(self) -> str:
        return f"ConnectionContext(erp_system={self.erp_system!r}, api_endpoint={self.api_endpoint!r})"

    @property
    def base_url(self) -> str:
        return (self.api_endpoint or "").rstrip("/")

    @property
    def bearer_token(self) -> str | None:
        return self.access_token or self.credentials.get("access_token")


@dataclass
class ConnectionResult:
    """Result of a connection probe."""

    success: bool
    message: str = "Connection successful"
    entities: dict[str, str] = field(default_factory=dict)


@dataclass
class TokenGrant:
    """Tokens returned by a successful refresh grant."""

    access_token: str
    refresh_token: str | None
    expires_at: datetime


def basic_auth(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode()
    return f"Basic {base64.b64encode(raw).decode()}"


class ErpAdapter(ABC):
    """Abstract base class for ERP adapters.

    Adapters are stateless; everything they need for a call is passed in a
    :class:`ConnectionContext`.  Every upstream request goes through
    :meth:`_request`, which enforces the hard timeout.
    """

    erp_system: str = ""
    supports_token_refresh: bool = False
    entity_names: dict[str, str] = {}
    field_mappings: dict[str, dict[str, str]] = {}

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else settings.ERP_HTTP_TIMEOUT_SECONDS

    @abstractmethod
    async def _probe(self, ctx: ConnectionContext) -> None:
        """Issue the system-specific connectivity check.

        Returns normally on success; raises ``UpstreamRejected`` or
        ``UpstreamTimeout`` otherwise.
        """
        ...  # pragma: no cover

    def default_entities(self, ctx: ConnectionContext) -> dict[str, str]:
        """Map of entity_type to the ERP's resource name."""
        return dict(self.entity_names)

    def default_field_mappings(self, ctx: ConnectionContext) -> dict[str, dict[str, str]]:
        """Per entity_type, local field to ERP field bindings."""
        return {entity: dict(fields) for entity, fields in self.field_mappings.items()}

    async def test_connection(self, ctx: ConnectionContext) -> ConnectionResult:
        """Probe the ERP.  Never raises; upstream detail is only logged."""
        if not ctx.base_url:
            return ConnectionResult(success=False, message="Connection test failed")
        try:
            await self._probe(ctx)
        except UpstreamTimeout:
            logger.warning("%s connection test timed out after %ss", self.erp_system, self.timeout)
            return ConnectionResult(success=False, message="ERP system did not respond in time")
        except (UpstreamRejected, KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning("%s connection test failed: %r", self.erp_system, e)
            return ConnectionResult(success=False, message="Connection test failed")
        return ConnectionResult(success=True, entities=self.default_entities(ctx))

    async def refresh_token(self, ctx: ConnectionContext) -> TokenGrant:
        """Run the OAuth refresh grant.  Session-auth systems do not support it."""
        raise TokenRefreshFailed(f"Token refresh not supported for {self.erp_system}")

    async def fetch_records(
        self,
        ctx: ConnectionContext,
        erp_entity_name: str,
        since: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Pull records changed since *since*.  Record transport is not wired up yet."""
        logger.info(
            "%s.fetch_records: entity=%s since=%s", type(self).__name__, erp_entity_name, since
        )
        return []

    async def push_records(
        self,
        ctx: ConnectionContext,
        erp_entity_name: str,
        records: list[dict[str, Any]],
    ) -> list[bool]:
        """Push *records*; returns one acceptance flag per record."""
        logger.info(
            "%s.push_records: entity=%s count=%d",
            type(self).__name__,
            erp_entity_name,
            len(records),
        )
        return [True for _ in records]

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request, cancelled outright after ``self.timeout`` seconds."""

        async def _send() -> httpx.Response:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)

        try:
            response = await asyncio.wait_for(_send(), timeout=self.timeout)
        except (TimeoutError, httpx.TimeoutException) as e:
            raise UpstreamTimeout() from e
        except httpx.HTTPError as e:
            logger.warning("%s %s %s failed: %s", self.erp_system, method, url, e)
            raise UpstreamRejected() from e

        if not response.is_success:
            logger.warning(
                "%s %s %s returned %s: %s",
                self.erp_system,
                method,
                url,
                response.status_code,
                response.text[:500],
            )
            raise UpstreamRejected(status=response.status_code)
        return response

    async def _token_request(
        self,
        ctx: ConnectionContext,
        url: str,
        **kwargs: Any,
    ) -> TokenGrant:
        """POST a refresh grant to *url* and parse the token response."""
        if not ctx.refresh_token:
            raise TokenRefreshFailed("Token refresh failed: no refresh token available")
        try:
            response = await self._request("POST", url, **kwargs)
            data = response.json()
        except (UpstreamRejected, UpstreamTimeout, ValueError) as e:
            logger.warning("%s token refresh failed: %r", self.erp_system, e)
            raise TokenRefreshFailed() from e
        return parse_token_response(data, ctx.refresh_token)


def parse_token_response(data: Any, previous_refresh_token: str | None) -> TokenGrant:
    """Build a TokenGrant; a provider that does not rotate keeps the old refresh token."""
    if not isinstance(data, dict):
        raise TokenRefreshFailed("Token refresh failed: malformed token response")
    access_token = data.get("access_token")
    if not access_token:
        raise TokenRefreshFailed("Token refresh failed: no access token returned")
    try:
        expires_in = int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
    except (TypeError, ValueError):
        expires_in = DEFAULT_TOKEN_LIFETIME_SECONDS
    return TokenGrant(
        access_token=str(access_token),
        refresh_token=data.get("refresh_token") or previous_refresh_token,
        expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
    )


def get_erp_adapter(erp_system: str) -> ErpAdapter:
    """Factory: return the adapter for *erp_system*.

    Raises ``ValidationError`` if the system is not supported.
    """
    from erpsync.services.erp_adapters import ADAPTERS

    adapter_cls = ADAPTERS.get(str(erp_system))
    if adapter_cls is None:
        raise ValidationError("Unsupported ERP system")
    return adapter_cls()
