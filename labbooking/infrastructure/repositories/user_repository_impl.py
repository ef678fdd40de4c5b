from __future__ import annotations

from sqlalchemy.orm import Session

from labbooking.core.entities.user import User
from labbooking.core.repositories.user_repository import UserRepository
from labbooking.infrastructure.models.models import UserModel


class UserRepositoryImpl(UserRepository):
    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, user_id: int) -> User | None:
        row = self._db.get(UserModel, user_id)
        if row is None:
            return None

        return User(
            user_id=row.user_id,
            email=row.email,
            role=row.role,
            first_name=row.first_name,
            last_name=row.last_name,
        )
