from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated identity extracted from a validated access token.

    Carried through the request via FastAPI's dependency system.
    Endpoints receive this instead of a raw user id string.

        user_id: subject from the JWT (a user UUID as a string)
        roles:   platform roles (admin, teacher, student)
    """

    user_id: str
    roles: frozenset[str]

    @property
    def uid(self) -> UUID:
        return UUID(self.user_id)

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_admin(self) -> bool:
        return "admin" in self.roles

    def owns(self, owner_id: UUID | str | None) -> bool:
        return owner_id is not None and str(owner_id) == self.user_id
