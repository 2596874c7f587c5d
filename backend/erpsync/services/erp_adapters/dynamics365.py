"""Dynamics 365 adapter: Web API with Microsoft identity platform tokens."""

from erpsync.core.errors import TokenRefreshFailed
from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import ConnectionContext, ErpAdapter, TokenGrant

DYNAMICS_DEFAULT_SCOPE = "https://org.crm.dynamics.com/.default"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"


class Dynamics365Adapter(ErpAdapter):
    erp_system = ErpSystem.DYNAMICS365.value
    supports_token_refresh = True
    entity_names = {
        "orders": "salesorders",
        "customers": "accounts",
        "products": "products",
        "invoices": "invoices",
        "payments": "payments",
    }
    field_mappings = {
        "orders": {
            "order_number": "ordernumber",
            "customer_id": "customerid",
            "order_date": "submitdate",
            "total_amount": "totalamount",
        },
        "customers": {
            "name": "name",
            "email": "emailaddress1",
            "phone": "telephone1",
            "address": "address1_line1",
        },
        "products": {"name": "name", "sku": "productnumber", "unit_price": "price"},
        "invoices": {"invoice_number": "invoicenumber", "total_amount": "totalamount", "due_date": "duedate"},
    }

    async def _probe(self, ctx: ConnectionContext) -> None:
        await self._request(
            "GET",
            f"{ctx.base_url}/api/data/v9.2/WhoAmI",
            headers={
                "Authorization": f"Bearer {ctx.bearer_token}",
                "OData-Version": "4.0",
                "Accept": "application/json",
            },
        )

    async def refresh_token(self, ctx: ConnectionContext) -> TokenGrant:
        config = ctx.oauth_config
        token_url = config.get("token_url")
        if not token_url:
            if not config.get("tenant_id"):
                raise TokenRefreshFailed("Token refresh failed: Azure tenant is not configured")
            token_url = MICROSOFT_TOKEN_URL.format(tenant_id=config["tenant_id"])
        if not config.get("client_id") or not ctx.client_secret:
            raise TokenRefreshFailed("Token refresh failed: OAuth client is not configured")
        return await self._token_request(
            ctx,
            token_url,
            data={
                "client_id": config["client_id"],
                "client_secret": ctx.client_secret,
                "grant_type": "refresh_token",
                "refresh_token": ctx.refresh_token,
                "scope": config.get("scope") or DYNAMICS_DEFAULT_SCOPE,
            },
        )
