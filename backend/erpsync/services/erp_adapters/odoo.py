"""Odoo adapter: JSON-RPC session authentication."""

from erpsync.core.errors import UpstreamRejected
from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import ConnectionContext, ErpAdapter


class OdooAdapter(ErpAdapter):
    erp_system = ErpSystem.ODOO.value
    entity_names = {
        "orders": "sale.order",
        "customers": "res.partner",
        "products": "product.product",
        "invoices": "account.move",
        "payments": "account.payment",
    }
    field_mappings = {
        "orders": {
            "order_number": "name",
            "customer_id": "partner_id",
            "order_date": "date_order",
            "total_amount": "amount_total",
            "status": "state",
        },
        "customers": {
            "name": "name",
            "email": "email",
            "phone": "phone",
            "address": "street",
        },
        "products": {"name": "name", "sku": "default_code", "unit_price": "list_price"},
        "invoices": {
            "invoice_number": "name",
            "total_amount": "amount_total",
            "due_date": "invoice_date_due",
        },
        "payments": {"amount": "amount", "payment_date": "date", "reference": "ref"},
    }

    async def _probe(self, ctx: ConnectionContext) -> None:
        response = await self._request(
            "POST",
            f"{ctx.base_url}/web/session/authenticate",
            json={
                "jsonrpc": "2.0",
                "params": {
                    "db": ctx.credentials.get("database"),
                    "login": ctx.credentials.get("username"),
                    "password": ctx.credentials.get("password"),
                },
            },
        )
        # Odoo answers 200 with an error payload on bad credentials
        payload = response.json()
        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict) or not result.get("uid"):
            raise UpstreamRejected()
