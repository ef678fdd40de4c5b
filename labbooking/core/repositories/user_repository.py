from __future__ import annotations

from abc import ABC, abstractmethod

from labbooking.core.entities.user import User


class UserRepository(ABC):
    @abstractmethod
    def get(self, user_id: int) -> User | None:
        raise NotImplementedError
