"""User profile and role models used by the auth gate."""

from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, func

from erpsync.core.database import Base
from erpsync.models.shared import UUIDType, generate_uuid


class UserRoleType(str, Enum):
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    MEMBER = "member"


ERP_ADMIN_ROLES = (UserRoleType.TENANT_ADMIN.value, UserRoleType.SUPER_ADMIN.value)


class UserProfile(Base):
    """Stored profile; the only source of truth for a user's tenant."""

    __tablename__ = "user_profiles"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    email = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", "role", name="uq_user_roles_user_tenant_role"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tenant_id = Column(
        UUIDType,
        ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    role = Column(String(30), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
