"""PostgreSQL implementation of UserRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update

from lms.db.engine import SessionFactory, session_scope
from lms.db.tables import UserRow
from lms.models.user import User
from lms.repos.user_repo import PROFILE_FIELDS


class PgUserRepo:
    """Satisfies the UserRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def get_by_id(self, user_id: UUID) -> User | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(UserRow, user_id)
            return _row_to_user(row) if row is not None else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserRow).where(UserRow.email == email.strip().lower())
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_user(row) if row is not None else None

    async def add(self, user: User) -> None:
        row = UserRow(
            id=user.id,
            email=user.email,
            password_hash=user.password_hash,
            name=user.name,
            role=user.role,
            is_paid=user.is_paid,
            is_active=user.is_active,
            bio=user.bio,
            phone=user.phone,
            avatar_url=user.avatar_url,
            created_at=user.created_at or datetime.now(UTC),
        )
        async with session_scope(self._sessions) as session:
            session.add(row)
            await session.flush()

    async def _update(self, user_id: UUID, **values: Any) -> User | None:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id)
            .values(**values)
            .returning(UserRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_user(row) if row is not None else None

    async def update_profile(self, user_id: UUID, **fields: Any) -> User | None:
        changes = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
        if not changes:
            return await self.get_by_id(user_id)
        return await self._update(user_id, **changes)

    async def set_active(self, user_id: UUID, is_active: bool) -> User | None:
        return await self._update(user_id, is_active=is_active)

    async def set_role(self, user_id: UUID, role: str) -> User | None:
        return await self._update(user_id, role=role)

    async def set_paid(self, user_id: UUID, is_paid: bool) -> User | None:
        return await self._update(user_id, is_paid=is_paid)

    async def update_password_hash(self, user_id: UUID, password_hash: str) -> None:
        await self._update(user_id, password_hash=password_hash)

    async def touch_login(self, user_id: UUID) -> None:
        await self._update(user_id, last_login_at=datetime.now(UTC))

    async def delete(self, user_id: UUID) -> bool:
        stmt = delete(UserRow).where(UserRow.id == user_id)
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_users(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        conditions = []
        if role is not None:
            conditions.append(UserRow.role == role)
        if is_active is not None:
            conditions.append(UserRow.is_active == is_active)

        page = (
            select(UserRow)
            .where(*conditions)
            .order_by(UserRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = select(func.count()).select_from(UserRow).where(*conditions)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(page)).scalars().all()
            count = (await session.execute(total)).scalar_one()
        return [_row_to_user(r) for r in rows], count

    async def count(self, *, role: str | None = None) -> int:
        stmt = select(func.count()).select_from(UserRow)
        if role is not None:
            stmt = stmt.where(UserRow.role == role)
        async with session_scope(self._sessions) as session:
            return (await session.execute(stmt)).scalar_one()


def _row_to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name or "",
        role=row.role,
        is_paid=row.is_paid,
        is_active=row.is_active,
        bio=row.bio,
        phone=row.phone,
        avatar_url=row.avatar_url,
        created_at=row.created_at,
        last_login_at=row.last_login_at,
    )
