from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    LAB_MANAGER = "LAB_MANAGER"
    PROFESSOR = "PROFESSOR"
    STUDENT = "STUDENT"


@dataclass(slots=True)
class User:
    """Authenticated principal as supplied by the identity collaborator."""

    user_id: int
    email: str
    role: Role | None
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email
