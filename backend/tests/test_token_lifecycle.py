"""Tests for OAuth token refresh ahead of expiry."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from erpsync.core.database import get_db
from erpsync.core.errors import TokenRefreshFailed
from erpsync.main import app
from erpsync.models.audit_log import AuditLog
from erpsync.models.shared import as_utc, utc_now
from erpsync.services.erp_adapters.base import TokenGrant
from erpsync.services.erp_adapters.quickbooks import QuickBooksAdapter
from erpsync.services.token_lifecycle import TokenLifecycleService
from tests.conftest import OTHER_TENANT_ID, SYSTEM_HEADERS, auth_headers, create_integration

NEW_EXPIRY = datetime(2030, 1, 1, tzinfo=UTC)


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


def _quickbooks(db_session, vault, expires_in: timedelta | None):
    return create_integration(
        db_session,
        erp_system="quickbooks",
        credentials={"realm_id": "123"},
        entities={"orders": "SalesOrder"},
        access_token_encrypted=vault.encrypt("old-access"),
        refresh_token_encrypted=vault.encrypt("old-refresh"),
        oauth_config={"client_id": "client"},
        oauth_client_secret_encrypted=vault.encrypt("client-secret"),
        token_expires_at=None if expires_in is None else utc_now() + expires_in,
    )


def _grant(refresh_token="new-refresh"):
    return TokenGrant(access_token="new-access", refresh_token=refresh_token, expires_at=NEW_EXPIRY)


class TestNeedsRefresh:
    def test_no_expiry(self, db_session, vault):
        integration = _quickbooks(db_session, vault, None)
        assert not TokenLifecycleService.needs_refresh(integration)

    def test_far_expiry(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(hours=1))
        assert not TokenLifecycleService.needs_refresh(integration)

    def test_inside_buffer(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=4))
        assert TokenLifecycleService.needs_refresh(integration)

    def test_already_expired(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=-4))
        assert TokenLifecycleService.needs_refresh(integration)


class TestEnsureFresh:
    @pytest.mark.asyncio
    async def test_no_refresh_when_valid(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=6))
        refresh = AsyncMock(return_value=_grant())
        with patch.object(QuickBooksAdapter, "refresh_token", refresh):
            refreshed = await TokenLifecycleService(db_session, vault).ensure_fresh(integration)
        assert refreshed is False
        refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refreshes_once_when_expiring(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=2))
        refresh = AsyncMock(return_value=_grant())
        with patch.object(QuickBooksAdapter, "refresh_token", refresh):
            refreshed = await TokenLifecycleService(db_session, vault).ensure_fresh(integration)

        assert refreshed is True
        refresh.assert_awaited_once()
        ctx = refresh.await_args.args[0]
        assert ctx.refresh_token == "old-refresh"
        assert ctx.client_secret == "client-secret"

        db_session.refresh(integration)
        assert vault.decrypt(integration.access_token_encrypted) == "new-access"
        assert vault.decrypt(integration.refresh_token_encrypted) == "new-refresh"
        assert as_utc(integration.token_expires_at) == NEW_EXPIRY
        entry = db_session.query(AuditLog).filter_by(action_type="ERP_TOKEN_REFRESH").one()
        assert "new-access" not in str(entry.metadata_)

    @pytest.mark.asyncio
    async def test_session_auth_systems_are_skipped(self, db_session, vault):
        integration = create_integration(db_session, token_expires_at=utc_now())
        assert await TokenLifecycleService(db_session, vault).ensure_fresh(integration) is False

    @pytest.mark.asyncio
    async def test_failure_is_audited_and_integration_stays_active(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=1))
        with patch.object(
            QuickBooksAdapter, "refresh_token", AsyncMock(side_effect=TokenRefreshFailed())
        ):
            with pytest.raises(TokenRefreshFailed):
                await TokenLifecycleService(db_session, vault).ensure_fresh(integration)

        db_session.refresh(integration)
        assert integration.is_active is True
        assert vault.decrypt(integration.access_token_encrypted) == "old-access"
        assert db_session.query(AuditLog).filter_by(action_type="ERP_TOKEN_REFRESH_FAILED").count() == 1


class TestRefreshNow:
    @pytest.mark.asyncio
    async def test_unsupported_system(self, db_session, vault):
        integration = create_integration(db_session)
        with pytest.raises(TokenRefreshFailed, match="Token refresh not supported for odoo"):
            await TokenLifecycleService(db_session, vault).refresh_now(integration)

    @pytest.mark.asyncio
    async def test_refreshes_regardless_of_expiry(self, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(days=30))
        with patch.object(QuickBooksAdapter, "refresh_token", AsyncMock(return_value=_grant())):
            outcome = await TokenLifecycleService(db_session, vault).refresh_now(integration)
        assert outcome.refreshed
        assert outcome.expires_at == NEW_EXPIRY


class TestRefreshExpiring:
    @pytest.mark.asyncio
    async def test_only_expiring_integrations(self, db_session, vault):
        _quickbooks(db_session, vault, timedelta(minutes=2))
        create_integration(
            db_session,
            tenant_id=OTHER_TENANT_ID,
            erp_system="quickbooks",
            credentials={"realm_id": "9"},
            refresh_token_encrypted=vault.encrypt("r"),
            token_expires_at=utc_now() + timedelta(hours=2),
        )
        refresh = AsyncMock(return_value=_grant())
        with patch.object(QuickBooksAdapter, "refresh_token", refresh):
            count = await TokenLifecycleService(db_session, vault).refresh_expiring()
        assert count == 1
        refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_pass(self, db_session, vault):
        _quickbooks(db_session, vault, timedelta(minutes=2))
        with patch.object(
            QuickBooksAdapter, "refresh_token", AsyncMock(side_effect=TokenRefreshFailed())
        ):
            assert await TokenLifecycleService(db_session, vault).refresh_expiring() == 0


class TestRefreshTokenApi:
    def test_system_key_refresh(self, client, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(hours=1))
        with patch.object(QuickBooksAdapter, "refresh_token", AsyncMock(return_value=_grant())):
            response = client.post(
                "/v1/erp/refresh-token",
                json={"integration_id": str(integration.id)},
                headers=SYSTEM_HEADERS,
            )
        assert response.status_code == 200
        assert response.json()["refreshed"] is True
        entry = db_session.query(AuditLog).filter_by(action_type="ERP_TOKEN_REFRESH").one()
        assert entry.performed_by is None

    def test_unsupported_system(self, client, db_session):
        integration = create_integration(db_session)
        response = client.post(
            "/v1/erp/refresh-token",
            json={"integration_id": str(integration.id)},
            headers=auth_headers(),
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Token refresh not supported for odoo"

    def test_failed_refresh(self, client, db_session, vault):
        integration = _quickbooks(db_session, vault, timedelta(minutes=1))
        with patch.object(
            QuickBooksAdapter, "refresh_token", AsyncMock(side_effect=TokenRefreshFailed())
        ):
            response = client.post(
                "/v1/erp/refresh-token",
                json={"integration_id": str(integration.id)},
                headers=auth_headers(),
            )
        assert response.status_code == 400
        assert response.json()["message"] == "Token refresh failed"
