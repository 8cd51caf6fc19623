from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from lms.core.errors import DuplicateKeyError
from lms.models.user import User


class UserRepo(Protocol):
    async def get_by_id(self, user_id: UUID) -> User | None: ...
    async def get_by_email(self, email: str) -> User | None: ...
    async def add(self, user: User) -> None: ...
    async def update_profile(self, user_id: UUID, **fields: Any) -> User | None: ...
    async def set_active(self, user_id: UUID, is_active: bool) -> User | None: ...
    async def set_role(self, user_id: UUID, role: str) -> User | None: ...
    async def set_paid(self, user_id: UUID, is_paid: bool) -> User | None: ...
    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None: ...
    async def touch_login(self, user_id: UUID) -> None: ...
    async def delete(self, user_id: UUID) -> bool: ...
    async def list_users(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]: ...
    async def count(self, *, role: str | None = None) -> int: ...


# Only these columns may be changed through update_profile
PROFILE_FIELDS = frozenset({"name", "bio", "phone", "avatar_url"})

_EPOCH = datetime.min.replace(tzinfo=UTC)


class InMemoryUserRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, User] = {}

    def _by_email(self, email: str) -> User | None:
        for u in self._by_id.values():
            if u.email == email:
                return u
        return None

    def _replace(self, user_id: UUID, **changes: Any) -> User | None:
        u = self._by_id.get(user_id)
        if u is None:
            return None
        updated = replace(u, **changes)
        self._by_id[user_id] = updated
        return updated

    async def get_by_id(self, user_id: UUID) -> User | None:
        return self._by_id.get(user_id)

    async def get_by_email(self, email: str) -> User | None:
        return self._by_email(email.strip().lower())

    async def add(self, user: User) -> None:
        if self._by_email(user.email) is not None:
            raise DuplicateKeyError("email already exists")
        self._by_id[user.id] = user

    async def update_profile(self, user_id: UUID, **fields: Any) -> User | None:
        changes = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        return self._replace(user_id, **changes)

    async def set_active(self, user_id: UUID, is_active: bool) -> User | None:
        return self._replace(user_id, is_active=is_active)

    async def set_role(self, user_id: UUID, role: str) -> User | None:
        return self._replace(user_id, role=role)

    async def set_paid(self, user_id: UUID, is_paid: bool) -> User | None:
        return self._replace(user_id, is_paid=is_paid)

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        self._replace(user_id, password_hash=password_hash)

    async def touch_login(self, user_id: UUID) -> None:
        self._replace(user_id, last_login_at=datetime.now(UTC))

    async def delete(self, user_id: UUID) -> bool:
        return self._by_id.pop(user_id, None) is not None

    async def list_users(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        matches = [
            u
            for u in self._by_id.values()
            if (role is None or u.role == role)
            and (is_active is None or u.is_active == is_active)
        ]
        matches.sort(key=lambda u: u.created_at or _EPOCH, reverse=True)
        return matches[offset : offset + limit], len(matches)

    async def count(self, *, role: str | None = None) -> int:
        return sum(1 for u in self._by_id.values() if role is None or u.role == role)
