"""Tests for the integration endpoints: connect, test, disable, entities and mappings."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from erpsync.core.database import get_db
from erpsync.core.idempotency import IDEMPOTENCY_HEADER
from erpsync.main import app
from erpsync.models.audit_log import AuditActionType, AuditLog
from erpsync.models.erp_entity import ErpEntity
from erpsync.models.field_mapping import FieldMapping
from erpsync.models.integration import Integration
from erpsync.repositories.erp_entity_repository import ErpEntityRepository
from erpsync.repositories.field_mapping_repository import FieldMappingRepository
from erpsync.services.erp_adapters.base import ConnectionResult
from erpsync.services.erp_adapters.odoo import OdooAdapter
from erpsync.services.erp_adapters.quickbooks import QuickBooksAdapter
from tests.conftest import (
    DEFAULT_TENANT_ID,
    MEMBER_USER_ID,
    OTHER_ADMIN_USER_ID,
    OTHER_TENANT_ID,
    SYSTEM_HEADERS,
    auth_headers,
    create_integration,
)

ODOO_CONNECT = {
    "erp_system": "odoo",
    "name": "Odoo production",
    "api_endpoint": "https://erp.example.com",
    "credentials": {"database": "prod", "username": "admin", "password": "s3cret-pw"},
}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


def _odoo_http(uid=2):
    """A stand-in httpx.AsyncClient answering the Odoo authenticate call."""
    response = httpx.Response(
        200,
        json={"result": {"uid": uid}} if uid else {"error": {"message": "Access denied"}},
        request=httpx.Request("POST", "https://erp.example.com/web/session/authenticate"),
    )
    http = MagicMock()
    http.__aenter__ = AsyncMock(return_value=http)
    http.__aexit__ = AsyncMock(return_value=False)
    http.request = AsyncMock(return_value=response)
    return http


def _patch_http(http):
    return patch("erpsync.services.erp_adapters.base.httpx.AsyncClient", return_value=http)


def _audits(db_session, action):
    return db_session.query(AuditLog).filter(AuditLog.action_type == action.value).all()


class TestConnect:
    def test_odoo_connect(self, client, db_session, vault):
        with _patch_http(_odoo_http()):
            response = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "ERP connected successfully"
        assert body["entities"] == {
            "orders": "sale.order",
            "customers": "res.partner",
            "products": "product.product",
            "invoices": "account.move",
            "payments": "account.payment",
        }
        assert body["integration"]["connection_status"] == "connected"
        assert body["integration"]["tenant_id"] == str(DEFAULT_TENANT_ID)
        assert "credentials_encrypted" not in body["integration"]

        integration = db_session.query(Integration).one()
        assert "s3cret-pw" not in integration.credentials_encrypted
        assert vault.decrypt_json(integration.credentials_encrypted) == ODOO_CONNECT["credentials"]
        assert integration.last_test_at is not None

        entities = ErpEntityRepository(db_session).get_all(integration.id)
        assert len(entities) == 5
        orders = ErpEntityRepository(db_session).get(integration.id, "orders")
        mappings = FieldMappingRepository(db_session).get_for_entity(orders.id)
        assert {m.local_field: m.erp_field for m in mappings}["order_number"] == "name"

        (audit,) = _audits(db_session, AuditActionType.ERP_CONNECT)
        assert audit.metadata_["created"] is True
        assert "s3cret-pw" not in json.dumps(audit.metadata_)

    def test_failed_probe_persists_nothing(self, client, db_session):
        with _patch_http(_odoo_http(uid=None)):
            response = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=auth_headers())

        assert response.status_code == 400
        assert response.json()["message"] == "Connection test failed"
        assert db_session.query(Integration).count() == 0
        (audit,) = _audits(db_session, AuditActionType.ERP_CONNECT_FAILED)
        assert audit.metadata_["erp_system"] == "odoo"
        assert "s3cret-pw" not in json.dumps(audit.metadata_)

    def test_reconnect_updates_same_row(self, client, db_session):
        with _patch_http(_odoo_http()):
            first = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=auth_headers())
            second = client.post(
                "/v1/erp/connect",
                json={**ODOO_CONNECT, "name": "Odoo renamed"},
                headers=auth_headers(),
            )

        assert first.json()["integration"]["id"] == second.json()["integration"]["id"]
        assert db_session.query(Integration).one().name == "Odoo renamed"
        assert db_session.query(ErpEntity).count() == 5
        created_flags = [a.metadata_["created"] for a in _audits(db_session, AuditActionType.ERP_CONNECT)]
        assert sorted(created_flags) == [False, True]

    def test_idempotent_replay_skips_probe(self, client, db_session):
        http = _odoo_http()
        headers = auth_headers(**{IDEMPOTENCY_HEADER: "connect-1"})
        with _patch_http(http):
            first = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=headers)
            second = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["idempotent"] is True
        assert second.json()["message"] == "Request already processed"
        assert http.request.await_count == 1

    def test_oauth_material_is_split_and_encrypted(self, client, db_session, vault):
        payload = {
            "erp_system": "quickbooks",
            "name": "QBO",
            "api_endpoint": "https://quickbooks.api.intuit.com",
            "credentials": {
                "realm_id": "4620816365",
                "access_token": "at-1",
                "refresh_token": "rt-1",
                "expires_in": 3600,
                "client_id": "cid",
                "client_secret": "cs-1",
            },
        }
        result = ConnectionResult(success=True, entities={"orders": "SalesOrder"})
        probe = AsyncMock(return_value=result)
        with patch.object(QuickBooksAdapter, "test_connection", probe):
            response = client.post("/v1/erp/connect", json=payload, headers=auth_headers())

        assert response.status_code == 200
        integration = db_session.query(Integration).one()
        assert integration.oauth_config == {"client_id": "cid"}
        assert vault.decrypt_json(integration.credentials_encrypted) == {"realm_id": "4620816365"}
        assert vault.decrypt(integration.access_token_encrypted) == "at-1"
        assert vault.decrypt(integration.refresh_token_encrypted) == "rt-1"
        assert vault.decrypt(integration.oauth_client_secret_encrypted) == "cs-1"
        assert integration.token_expires_at is not None
        assert response.json()["integration"]["token_expires_at"] is not None

    def test_unknown_erp_system(self, client):
        response = client.post(
            "/v1/erp/connect",
            json={**ODOO_CONNECT, "erp_system": "netsuite"},
            headers=auth_headers(),
        )
        assert response.status_code == 400
        assert response.json()["message"].startswith("Invalid request")

    def test_member_cannot_connect(self, client):
        response = client.post(
            "/v1/erp/connect", json=ODOO_CONNECT, headers=auth_headers(MEMBER_USER_ID)
        )
        assert response.status_code == 403

    def test_system_key_cannot_connect(self, client):
        response = client.post("/v1/erp/connect", json=ODOO_CONNECT, headers=SYSTEM_HEADERS)
        assert response.status_code == 401


class TestIntegrationReads:
    def test_list_is_tenant_scoped(self, client, db_session):
        own = create_integration(db_session)
        create_integration(db_session, tenant_id=OTHER_TENANT_ID)

        response = client.get("/v1/erp/integrations", headers=auth_headers())

        assert response.status_code == 200
        assert [i["id"] for i in response.json()["integrations"]] == [str(own.id)]

    def test_get(self, client, db_session):
        integration = create_integration(db_session)
        response = client.get(f"/v1/erp/integrations/{integration.id}", headers=auth_headers())
        assert response.status_code == 200
        assert response.json()["integration"]["erp_system"] == "odoo"

    def test_get_other_tenant_forbidden(self, client, db_session):
        integration = create_integration(db_session, tenant_id=OTHER_TENANT_ID)
        response = client.get(f"/v1/erp/integrations/{integration.id}", headers=auth_headers())
        assert response.status_code == 403
        assert response.json()["message"].startswith("Forbidden:")

    def test_get_missing(self, client):
        response = client.get(
            "/v1/erp/integrations/99999999-0000-0000-0000-000000000000", headers=auth_headers()
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Integration not found"


class TestConnectionTest:
    def test_success_marks_connected(self, client, db_session):
        integration = create_integration(db_session, connection_status="error")
        with patch.object(
            OdooAdapter, "test_connection", AsyncMock(return_value=ConnectionResult(success=True))
        ) as probe:
            response = client.post(
                f"/v1/erp/integrations/{integration.id}/test", headers=auth_headers()
            )

        assert response.status_code == 200
        assert response.json()["message"] == "Connection test succeeded"
        ctx = probe.await_args.args[0]
        assert ctx.credentials["password"] == "hunter2"
        db_session.refresh(integration)
        assert integration.connection_status == "connected"

    def test_failure_marks_error(self, client, db_session):
        integration = create_integration(db_session)
        result = ConnectionResult(success=False, message="Connection test failed")
        with patch.object(OdooAdapter, "test_connection", AsyncMock(return_value=result)):
            response = client.post(
                f"/v1/erp/integrations/{integration.id}/test", headers=auth_headers()
            )

        assert response.status_code == 400
        assert response.json()["success"] is False
        db_session.refresh(integration)
        assert integration.connection_status == "error"
        (audit,) = _audits(db_session, AuditActionType.ERP_CONNECTION_TEST)
        assert audit.metadata_["success"] is False

    def test_other_tenant_forbidden(self, client, db_session):
        integration = create_integration(db_session)
        response = client.post(
            f"/v1/erp/integrations/{integration.id}/test",
            headers=auth_headers(OTHER_ADMIN_USER_ID),
        )
        assert response.status_code == 403


class TestDisable:
    def test_soft_disable_keeps_row(self, client, db_session):
        integration = create_integration(db_session)
        response = client.delete(f"/v1/erp/integrations/{integration.id}", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["message"] == "Integration disabled"
        assert response.json()["integration"]["is_active"] is False
        db_session.refresh(integration)
        assert integration.is_active is False
        assert len(_audits(db_session, AuditActionType.ERP_DISABLE)) == 1

    def test_other_tenant_forbidden(self, client, db_session):
        integration = create_integration(db_session)
        response = client.delete(
            f"/v1/erp/integrations/{integration.id}", headers=auth_headers(OTHER_ADMIN_USER_ID)
        )
        assert response.status_code == 403
        db_session.refresh(integration)
        assert integration.is_active is True


class TestEntitiesAndMappings:
    def test_list_entities(self, client, db_session):
        integration = create_integration(
            db_session, entities={"orders": "sale.order", "customers": "res.partner"}
        )
        response = client.get(
            f"/v1/erp/integrations/{integration.id}/entities", headers=auth_headers()
        )
        assert response.status_code == 200
        assert {e["entity_type"] for e in response.json()["entities"]} == {"orders", "customers"}

    def test_disable_entity(self, client, db_session):
        integration = create_integration(db_session)
        response = client.patch(
            f"/v1/erp/integrations/{integration.id}/entities/orders",
            json={"is_enabled": False},
            headers=auth_headers(),
        )
        assert response.status_code == 200
        assert response.json()["entity"]["is_enabled"] is False
        assert ErpEntityRepository(db_session).get(integration.id, "orders").is_enabled is False

    def test_unbound_entity_not_found(self, client, db_session):
        integration = create_integration(db_session)
        response = client.patch(
            f"/v1/erp/integrations/{integration.id}/entities/customers",
            json={"is_enabled": False},
            headers=auth_headers(),
        )
        assert response.status_code == 404
        assert response.json()["message"] == "Entity not found"

    def test_unknown_entity_type(self, client, db_session):
        integration = create_integration(db_session)
        response = client.get(
            f"/v1/erp/integrations/{integration.id}/entities/widgets/field-mappings",
            headers=auth_headers(),
        )
        assert response.status_code == 400

    def test_replace_and_list_mappings(self, client, db_session):
        integration = create_integration(db_session)
        entity = ErpEntityRepository(db_session).get(integration.id, "orders")
        FieldMappingRepository(db_session).seed_defaults(
            entity.id, {"order_number": "name", "status": "state"}
        )
        url = f"/v1/erp/integrations/{integration.id}/entities/orders/field-mappings"

        response = client.put(
            url,
            json={
                "mappings": [
                    {
                        "local_field": "order_number",
                        "erp_field": "client_order_ref",
                        "is_required": True,
                        "transform_function": "uppercase",
                    }
                ]
            },
            headers=auth_headers(),
        )
        assert response.status_code == 200
        (mapping,) = response.json()["mappings"]
        assert mapping["erp_field"] == "client_order_ref"
        assert mapping["transform_function"] == "uppercase"
        assert mapping["manually_verified"] is True

        listed = client.get(url, headers=auth_headers()).json()["mappings"]
        assert [m["local_field"] for m in listed] == ["order_number"]
        assert db_session.query(FieldMapping).count() == 1
        (audit,) = _audits(db_session, AuditActionType.ERP_FIELD_MAPPING_UPDATE)
        assert audit.metadata_ == {
            "integration_id": str(integration.id),
            "entity_type": "orders",
            "count": 1,
        }

    def test_invalid_transform_rejected(self, client, db_session):
        integration = create_integration(db_session)
        response = client.put(
            f"/v1/erp/integrations/{integration.id}/entities/orders/field-mappings",
            json={"mappings": [{"local_field": "a", "erp_field": "b", "transform_function": "rot13"}]},
            headers=auth_headers(),
        )
        assert response.status_code == 400

    def test_mappings_of_other_tenant_forbidden(self, client, db_session):
        integration = create_integration(db_session, tenant_id=OTHER_TENANT_ID)
        response = client.get(
            f"/v1/erp/integrations/{integration.id}/entities/orders/field-mappings",
            headers=auth_headers(),
        )
        assert response.status_code == 403
