"""Sage 50 adapter: SData feed with HTTP basic auth."""

from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import ConnectionContext, ErpAdapter, basic_auth


class SageAdapter(ErpAdapter):
    erp_system = ErpSystem.SAGE.value
    entity_names = {
        "orders": "SalesOrders",
        "customers": "Customers",
        "products": "Commodities",
        "invoices": "SalesInvoices",
        "payments": "CustomerPayments",
    }
    field_mappings = {
        "orders": {
            "order_number": "reference",
            "customer_id": "customer",
            "order_date": "date",
            "total_amount": "grossTotal",
        },
        "customers": {"name": "name", "email": "email", "phone": "telephone"},
        "products": {"name": "description", "sku": "reference"},
        "invoices": {"invoice_number": "reference", "total_amount": "grossTotal", "due_date": "dueDate"},
        "payments": {"amount": "amount", "payment_date": "date", "reference": "reference"},
    }

    async def _probe(self, ctx: ConnectionContext) -> None:
        await self._request(
            "GET",
            f"{ctx.base_url}/sdata/accounts50/GCRM/-/",
            headers={
                "Authorization": basic_auth(
                    str(ctx.credentials.get("username", "")),
                    str(ctx.credentials.get("password", "")),
                )
            },
        )
