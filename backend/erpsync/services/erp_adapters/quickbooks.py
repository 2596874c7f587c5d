"""QuickBooks Online adapter: OAuth 2.0 bearer tokens with rotating refresh."""

from erpsync.core.errors import TokenRefreshFailed
from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import (
    ConnectionContext,
    ErpAdapter,
    TokenGrant,
    basic_auth,
)

QUICKBOOKS_TOKEN_URL = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"


class QuickBooksAdapter(ErpAdapter):
    erp_system = ErpSystem.QUICKBOOKS.value
    supports_token_refresh = True
    entity_names = {
        "orders": "SalesOrder",
        "customers": "Customer",
        "products": "Item",
        "invoices": "Invoice",
        "payments": "Payment",
    }
    field_mappings = {
        "orders": {
            "order_number": "DocNumber",
            "customer_id": "CustomerRef",
            "order_date": "TxnDate",
            "total_amount": "TotalAmt",
        },
        "customers": {
            "name": "DisplayName",
            "email": "PrimaryEmailAddr",
            "phone": "PrimaryPhone",
            "address": "BillAddr",
        },
        "products": {"name": "Name", "sku": "Sku", "unit_price": "UnitPrice"},
        "invoices": {"invoice_number": "DocNumber", "total_amount": "TotalAmt", "due_date": "DueDate"},
        "payments": {"amount": "TotalAmt", "payment_date": "TxnDate", "reference": "PaymentRefNum"},
    }

    async def _probe(self, ctx: ConnectionContext) -> None:
        realm_id = ctx.credentials["realm_id"]
        await self._request(
            "GET",
            f"{ctx.base_url}/v3/company/{realm_id}/companyinfo/{realm_id}",
            headers={
                "Authorization": f"Bearer {ctx.bearer_token}",
                "Accept": "application/json",
            },
        )

    async def refresh_token(self, ctx: ConnectionContext) -> TokenGrant:
        client_id = ctx.oauth_config.get("client_id")
        if not client_id or not ctx.client_secret:
            raise TokenRefreshFailed("Token refresh failed: OAuth client is not configured")
        return await self._token_request(
            ctx,
            ctx.oauth_config.get("token_url") or QUICKBOOKS_TOKEN_URL,
            headers={
                "Authorization": basic_auth(str(client_id), ctx.client_secret),
                "Accept": "application/json",
            },
            data={"grant_type": "refresh_token", "refresh_token": ctx.refresh_token},
        )
