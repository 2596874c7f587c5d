from erpsync.models.integration import ErpSystem
from erpsync.services.erp_adapters.base import (
    ConnectionContext,
    ConnectionResult,
    ErpAdapter,
    TokenGrant,
    get_erp_adapter,
)
from erpsync.services.erp_adapters.custom_api import CustomApiAdapter
from erpsync.services.erp_adapters.dynamics365 import Dynamics365Adapter
from erpsync.services.erp_adapters.odoo import OdooAdapter
from erpsync.services.erp_adapters.quickbooks import QuickBooksAdapter
from erpsync.services.erp_adapters.sage import SageAdapter
from erpsync.services.erp_adapters.sap import SapAdapter

ADAPTERS: dict[str, type[ErpAdapter]] = {
    ErpSystem.ODOO.value: OdooAdapter,
    ErpSystem.SAP.value: SapAdapter,
    ErpSystem.QUICKBOOKS.value: QuickBooksAdapter,
    ErpSystem.SAGE.value: SageAdapter,
    ErpSystem.DYNAMICS365.value: Dynamics365Adapter,
    ErpSystem.CUSTOM_API.value: CustomApiAdapter,
}

__all__ = [
    "ADAPTERS",
    "ConnectionContext",
    "ConnectionResult",
    "CustomApiAdapter",
    "Dynamics365Adapter",
    "ErpAdapter",
    "OdooAdapter",
    "QuickBooksAdapter",
    "SageAdapter",
    "SapAdapter",
    "TokenGrant",
    "get_erp_adapter",
]
