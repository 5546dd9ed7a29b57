"""
User domain model.
"""

from dataclasses import dataclass

from exceptions import InvalidInput

STUDENT = "student"
STAFF = "staff"
ADMIN = "admin"


@dataclass(frozen=True)
class User:
    """
    Represents the caller, already authenticated by the outer layer.

    The core only uses `id` (as requester/reviewer id); `role` is carried
    so the CLI can decide which actions to offer.
    """

    allowed_roles = (STUDENT, STAFF, ADMIN)

    id: str
    name: str
    role: str = STUDENT

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise InvalidInput("User id must be a non-empty string.")
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidInput("User name must be a non-empty string.")
        if self.role not in self.allowed_roles:
            raise InvalidInput(
                f"Invalid role '{self.role}'. Allowed: {', '.join(self.allowed_roles)}"
            )

    @property
    def can_review(self) -> bool:
        return self.role in (STAFF, ADMIN)

    def __str__(self) -> str:
        return f"User(id={self.id}, name='{self.name}', role={self.role})"
