"""SAP Business One adapter: Service Layer login."""

from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import ConnectionContext, ErpAdapter


class SapAdapter(ErpAdapter):
    erp_system = ErpSystem.SAP.value
    entity_names = {
        "orders": "Orders",
        "customers": "BusinessPartners",
        "products": "Items",
        "invoices": "Invoices",
        "payments": "IncomingPayments",
    }
    field_mappings = {
        "orders": {
            "order_number": "DocNum",
            "customer_id": "CardCode",
            "order_date": "DocDate",
            "total_amount": "DocTotal",
        },
        "customers": {
            "name": "CardName",
            "email": "EmailAddress",
            "phone": "Phone1",
            "address": "Address",
        },
        "products": {"name": "ItemName", "sku": "ItemCode"},
        "invoices": {"invoice_number": "DocNum", "total_amount": "DocTotal", "due_date": "DocDueDate"},
        "payments": {"amount": "CashSum", "payment_date": "DocDate", "reference": "Reference1"},
    }

    async def _probe(self, ctx: ConnectionContext) -> None:
        await self._request(
            "POST",
            f"{ctx.base_url}/Login",
            json={
                "CompanyDB": ctx.credentials.get("company_db"),
                "UserName": ctx.credentials.get("username"),
                "Password": ctx.credentials.get("password"),
            },
        )
