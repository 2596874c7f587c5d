from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from erpsync.models.user import UserProfile, UserRole


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: UUID) -> UserProfile | None:
        return self.db.query(UserProfile).filter(UserProfile.id == user_id).first()

    def has_role(self, user_id: UUID, tenant_id: UUID, roles: Iterable[str]) -> bool:
        return (
            self.db.query(UserRole.id)
            .filter(
                UserRole.user_id == user_id,
                UserRole.tenant_id == tenant_id,
                UserRole.role.in_(list(roles)),
            )
            .first()
            is not None
        )
