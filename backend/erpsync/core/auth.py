import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from erpsync.core.config import settings
from erpsync.core.database import get_db
from erpsync.core.errors import Forbidden, Unauthenticated
from erpsync.models.user import ERP_ADMIN_ROLES
from erpsync.repositories.user_repository import UserRepository


@dataclass(frozen=True)
class AuthContext:
    """Verified caller identity.

    ``tenant_id`` is always taken from the stored profile.  The system
    identity has no tenant and bypasses role checks.
    """

    user_id: UUID | str
    tenant_id: UUID | None
    is_system: bool = False

    @property
    def performed_by(self) -> UUID | None:
        """Actor recorded in the audit trail; ``None`` for system actions."""
        if self.is_system:
            return None
        return self.user_id  # type: ignore[return-value]


SYSTEM_IDENTITY = AuthContext(user_id="system", tenant_id=None, is_system=True)


def create_access_token(user_id: UUID, expires_in: int = 3600) -> str:
    """Issue an HS256 user token (used by operators and tests)."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise Unauthenticated("Missing Authorization header")
    token = auth_header[7:].strip()
    if not token:
        raise Unauthenticated("Missing Authorization header")
    return token


def _is_system_key(token: str) -> bool:
    if not settings.SYSTEM_API_KEY:
        return False
    return hmac.compare_digest(token.encode(), settings.SYSTEM_API_KEY.encode())


def decode_user_token(token: str) -> UUID:
    """Return the user id carried by *token*, or raise ``Unauthenticated``."""
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
        )
        return UUID(str(payload["sub"]))
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise Unauthenticated("Invalid or expired token") from None


def verify(request: Request, db: Session, allow_system_key: bool = False) -> AuthContext:
    """Authenticate the caller and require an ERP admin role in their tenant."""
    token = _bearer_token(request)

    if allow_system_key and _is_system_key(token):
        return SYSTEM_IDENTITY

    user_id = decode_user_token(token)
    repo = UserRepository(db)
    profile = repo.get_profile(user_id)
    if profile is None or profile.tenant_id is None:
        raise Forbidden("No tenant found for user")

    tenant_id = UUID(str(profile.tenant_id))
    if not repo.has_role(user_id, tenant_id, ERP_ADMIN_ROLES):
        raise Forbidden("Forbidden: requires tenant_admin or super_admin role")

    return AuthContext(user_id=user_id, tenant_id=tenant_id)


def require_erp_admin(request: Request, db: Session = Depends(get_db)) -> AuthContext:
    return verify(request, db, allow_system_key=False)


def require_erp_admin_or_system(
    request: Request,
    db: Session = Depends(get_db),
) -> AuthContext:
    return verify(request, db, allow_system_key=True)


def require_system(request: Request, db: Session = Depends(get_db)) -> AuthContext:
    """Scheduler-only endpoints."""
    auth = verify(request, db, allow_system_key=True)
    if not auth.is_system:
        raise Forbidden("Forbidden: system identity required")
    return auth


def ensure_tenant_access(auth: AuthContext, resource_tenant_id: UUID) -> None:
    """Cross-tenant guard: the resource must belong to the caller's tenant."""
    if auth.is_system:
        return
    if auth.tenant_id != resource_tenant_id:
        raise Forbidden("Forbidden: integration belongs to another tenant")
