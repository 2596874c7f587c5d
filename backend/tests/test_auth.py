"""Tests for the auth gate: bearer parsing, system key, tenant and role checks."""

from unittest.mock import MagicMock
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from erpsync.core.auth import (
    SYSTEM_IDENTITY,
    AuthContext,
    create_access_token,
    ensure_tenant_access,
    verify,
)
from erpsync.core.config import settings
from erpsync.core.database import get_db
from erpsync.core.errors import Forbidden, Unauthenticated
from erpsync.main import app
from tests.conftest import (
    ADMIN_USER_ID,
    DEFAULT_TENANT_ID,
    MEMBER_USER_ID,
    ORPHAN_USER_ID,
    OTHER_TENANT_ID,
    SUPER_ADMIN_USER_ID,
    SYSTEM_HEADERS,
    TEST_SYSTEM_KEY,
    auth_headers,
)


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


def _request(authorization: str | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = {"Authorization": authorization} if authorization else {}
    return request


class TestVerify:
    def test_missing_header(self, db_session):
        with pytest.raises(Unauthenticated, match="Missing Authorization header"):
            verify(_request(), db_session)

    def test_non_bearer_header(self, db_session):
        with pytest.raises(Unauthenticated, match="Missing Authorization header"):
            verify(_request("Basic abc"), db_session)

    def test_invalid_token(self, db_session):
        with pytest.raises(Unauthenticated, match="Invalid or expired token"):
            verify(_request("Bearer not-a-jwt"), db_session)

    def test_expired_token(self, db_session):
        token = create_access_token(ADMIN_USER_ID, expires_in=-10)
        with pytest.raises(Unauthenticated, match="Invalid or expired token"):
            verify(_request(f"Bearer {token}"), db_session)

    def test_token_signed_with_other_secret(self, db_session):
        token = jwt.encode({"sub": str(ADMIN_USER_ID)}, "wrong-secret", algorithm="HS256")
        with pytest.raises(Unauthenticated):
            verify(_request(f"Bearer {token}"), db_session)

    def test_tenant_admin(self, db_session):
        token = create_access_token(ADMIN_USER_ID)
        auth = verify(_request(f"Bearer {token}"), db_session)
        assert auth == AuthContext(user_id=ADMIN_USER_ID, tenant_id=DEFAULT_TENANT_ID)
        assert auth.performed_by == ADMIN_USER_ID

    def test_super_admin(self, db_session):
        token = create_access_token(SUPER_ADMIN_USER_ID)
        assert verify(_request(f"Bearer {token}"), db_session).tenant_id == DEFAULT_TENANT_ID

    def test_member_is_forbidden(self, db_session):
        token = create_access_token(MEMBER_USER_ID)
        with pytest.raises(Forbidden, match="requires tenant_admin or super_admin"):
            verify(_request(f"Bearer {token}"), db_session)

    def test_user_without_tenant(self, db_session):
        token = create_access_token(ORPHAN_USER_ID)
        with pytest.raises(Forbidden, match="No tenant found for user"):
            verify(_request(f"Bearer {token}"), db_session)

    def test_unknown_user(self, db_session):
        token = create_access_token(uuid4())
        with pytest.raises(Forbidden, match="No tenant found for user"):
            verify(_request(f"Bearer {token}"), db_session)

    def test_system_key_when_allowed(self, db_session):
        auth = verify(_request(f"Bearer {TEST_SYSTEM_KEY}"), db_session, allow_system_key=True)
        assert auth is SYSTEM_IDENTITY
        assert auth.is_system
        assert auth.tenant_id is None
        assert auth.performed_by is None

    def test_system_key_when_not_allowed(self, db_session):
        with pytest.raises(Unauthenticated):
            verify(_request(f"Bearer {TEST_SYSTEM_KEY}"), db_session)

    def test_empty_system_key_never_matches(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "SYSTEM_API_KEY", "")
        with pytest.raises(Unauthenticated):
            verify(_request("Bearer anything"), db_session, allow_system_key=True)


class TestEnsureTenantAccess:
    def test_same_tenant(self):
        ensure_tenant_access(AuthContext(ADMIN_USER_ID, DEFAULT_TENANT_ID), DEFAULT_TENANT_ID)

    def test_other_tenant(self):
        with pytest.raises(Forbidden, match="another tenant"):
            ensure_tenant_access(AuthContext(ADMIN_USER_ID, DEFAULT_TENANT_ID), OTHER_TENANT_ID)

    def test_system_identity_crosses_tenants(self):
        ensure_tenant_access(SYSTEM_IDENTITY, OTHER_TENANT_ID)


class TestAuthOverHttp:
    def test_missing_header_envelope(self, client):
        response = client.get("/v1/erp/integrations")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Missing Authorization header"
        assert body["rateLimited"] is False
        assert "timestamp" in body

    def test_member_forbidden(self, client):
        response = client.get("/v1/erp/integrations", headers=auth_headers(MEMBER_USER_ID))
        assert response.status_code == 403

    def test_system_key_rejected_on_user_endpoint(self, client):
        response = client.get("/v1/erp/integrations", headers=SYSTEM_HEADERS)
        assert response.status_code == 401

    def test_retry_endpoint_requires_system(self, client):
        response = client.post("/v1/erp/sync/retry", headers=auth_headers())
        assert response.status_code == 403
        assert response.json()["message"] == "Forbidden: system identity required"

    def test_retry_endpoint_with_system_key(self, client):
        response = client.post("/v1/erp/sync/retry", headers=SYSTEM_HEADERS)
        assert response.status_code == 200
        assert response.json()["retried"] == 0

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"
