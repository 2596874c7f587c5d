"""Generic REST adapter configured entirely from the stored credentials."""

from typing import Any

from erpsync.core.errors import TokenRefreshFailed
from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import (
    ConnectionContext,
    ErpAdapter,
    TokenGrant,
    basic_auth,
)

DEFAULT_HEALTH_ENDPOINT = "/health"
DEFAULT_API_KEY_HEADER = "X-API-Key"


def auth_headers(credentials: dict[str, Any], access_token: str | None = None) -> dict[str, str]:
    """Headers for the configured auth type: bearer, basic or api_key."""
    headers = {"Content-Type": "application/json"}
    auth_type = credentials.get("auth_type")
    if auth_type == "bearer":
        headers["Authorization"] = f"Bearer {access_token or credentials.get('token', '')}"
    elif auth_type == "basic":
        headers["Authorization"] = basic_auth(
            str(credentials.get("username", "")), str(credentials.get("password", ""))
        )
    elif auth_type == "api_key":
        header = credentials.get("api_key_header") or DEFAULT_API_KEY_HEADER
        headers[str(header)] = str(credentials.get("api_key", ""))
    return headers


class CustomApiAdapter(ErpAdapter):
    erp_system = ErpSystem.CUSTOM_API.value
    supports_token_refresh = True

    def default_entities(self, ctx: ConnectionContext) -> dict[str, str]:
        entities = ctx.credentials.get("entities") or {}
        return {str(k): str(v) for k, v in entities.items() if v}

    def default_field_mappings(self, ctx: ConnectionContext) -> dict[str, dict[str, str]]:
        mappings = ctx.credentials.get("field_mappings") or {}
        return {str(entity): dict(fields) for entity, fields in mappings.items()}

    async def _probe(self, ctx: ConnectionContext) -> None:
        health = ctx.credentials.get("health_endpoint") or DEFAULT_HEALTH_ENDPOINT
        await self._request(
            "GET",
            f"{ctx.base_url}{health}",
            headers=auth_headers(ctx.credentials, ctx.access_token),
        )

    async def refresh_token(self, ctx: ConnectionContext) -> TokenGrant:
        token_url = ctx.oauth_config.get("token_url")
        if not token_url:
            raise TokenRefreshFailed("Token refresh failed: no token URL configured")
        return await self._token_request(
            ctx,
            token_url,
            json={
                "grant_type": "refresh_token",
                "refresh_token": ctx.refresh_token,
                "client_id": ctx.oauth_config.get("client_id"),
                "client_secret": ctx.client_secret,
            },
        )
