from typing import Any

from pydantic import BaseModel, Field

# Event types an ERP may push, and the entity each one imports.
WEBHOOK_EVENT_ENTITIES = {
    "order.created": "orders",
    "order.updated": "orders",
    "customer.created": "customers",
    "customer.updated": "customers",
    "invoice.paid": "invoices",
    "payment.received": "payments",
}


class WebhookEvent(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=100)
    external_id: str | None = Field(default=None, max_length=255)
    data: dict[str, Any] = Field(default_factory=dict)
