"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from typing import Any

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import erpsync.models  # noqa: F401  registers every table on Base.metadata
from erpsync.core import database as db_module
from erpsync.core.auth import create_access_token
from erpsync.core.config import settings
from erpsync.core.database import Base
from erpsync.core.vault import CredentialVault
from erpsync.models.integration import ConnectionStatus, Integration
from erpsync.models.shared import DEFAULT_TENANT_ID
from erpsync.models.tenant import Tenant
from erpsync.models.user import UserProfile, UserRole, UserRoleType
from erpsync.repositories.erp_entity_repository import ErpEntityRepository

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4
TEST_SYSTEM_KEY = "test-system-key"

settings.CREDENTIAL_ENCRYPTION_KEY = TEST_ENCRYPTION_KEY
settings.SYSTEM_API_KEY = TEST_SYSTEM_KEY
settings.AUTH_JWT_SECRET = "test-jwt-secret"

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

OTHER_TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
ADMIN_USER_ID = uuid.UUID("10000000-0000-0000-0000-000000000001")
SUPER_ADMIN_USER_ID = uuid.UUID("10000000-0000-0000-0000-000000000002")
MEMBER_USER_ID = uuid.UUID("10000000-0000-0000-0000-000000000003")
ORPHAN_USER_ID = uuid.UUID("10000000-0000-0000-0000-000000000004")
OTHER_ADMIN_USER_ID = uuid.UUID("20000000-0000-0000-0000-000000000001")

SYSTEM_HEADERS = {"Authorization": f"Bearer {TEST_SYSTEM_KEY}"}


def _seed_tenants_and_users(session: Session) -> None:
    """Two tenants, each with an admin; plus a member and a user without a tenant."""
    session.add_all(
        [
            Tenant(id=DEFAULT_TENANT_ID, name="Default Test Tenant"),
            Tenant(id=OTHER_TENANT_ID, name="Other Test Tenant"),
        ]
    )
    session.flush()
    session.add_all(
        [
            UserProfile(id=ADMIN_USER_ID, tenant_id=DEFAULT_TENANT_ID, email="admin@example.com"),
            UserProfile(id=SUPER_ADMIN_USER_ID, tenant_id=DEFAULT_TENANT_ID),
            UserProfile(id=MEMBER_USER_ID, tenant_id=DEFAULT_TENANT_ID),
            UserProfile(id=ORPHAN_USER_ID, tenant_id=None),
            UserProfile(id=OTHER_ADMIN_USER_ID, tenant_id=OTHER_TENANT_ID),
        ]
    )
    session.flush()
    session.add_all(
        [
            UserRole(
                user_id=ADMIN_USER_ID,
                tenant_id=DEFAULT_TENANT_ID,
                role=UserRoleType.TENANT_ADMIN.value,
            ),
            UserRole(
                user_id=SUPER_ADMIN_USER_ID,
                tenant_id=DEFAULT_TENANT_ID,
                role=UserRoleType.SUPER_ADMIN.value,
            ),
            UserRole(
                user_id=MEMBER_USER_ID,
                tenant_id=DEFAULT_TENANT_ID,
                role=UserRoleType.MEMBER.value,
            ),
            UserRole(
                user_id=OTHER_ADMIN_USER_ID,
                tenant_id=OTHER_TENANT_ID,
                role=UserRoleType.TENANT_ADMIN.value,
            ),
        ]
    )
    session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_tenants_and_users(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def default_tenant_id():
    return DEFAULT_TENANT_ID


@pytest.fixture
def vault():
    return CredentialVault(TEST_ENCRYPTION_KEY)


def auth_headers(user_id: uuid.UUID = ADMIN_USER_ID, **extra: str) -> dict[str, str]:
    """Bearer headers for a seeded user, plus any extra headers."""
    headers = {"Authorization": f"Bearer {create_access_token(user_id)}"}
    headers.update(extra)
    return headers


def create_integration(
    db: Session,
    *,
    tenant_id: uuid.UUID = DEFAULT_TENANT_ID,
    erp_system: str = "odoo",
    credentials: dict[str, Any] | None = None,
    entities: dict[str, str] | None = None,
    **fields: Any,
) -> Integration:
    """Insert a connected, active integration with encrypted credentials."""
    vault = CredentialVault(TEST_ENCRYPTION_KEY)
    values: dict[str, Any] = {
        "tenant_id": tenant_id,
        "erp_system": erp_system,
        "name": f"{erp_system} test",
        "api_endpoint": "https://erp.example.com",
        "credentials_encrypted": vault.encrypt_json(
            credentials
            if credentials is not None
            else {"database": "prod", "username": "admin", "password": "hunter2"}
        ),
        "oauth_config": {},
        "connection_status": ConnectionStatus.CONNECTED.value,
        "is_active": True,
    }
    values.update(fields)
    integration = Integration(**values)
    db.add(integration)
    db.commit()
    db.refresh(integration)

    repo = ErpEntityRepository(db)
    for entity_type, erp_name in (entities if entities is not None else {"orders": "sale.order"}).items():
        repo.upsert(integration.id, entity_type, erp_name)  # type: ignore[arg-type]
    return integration
