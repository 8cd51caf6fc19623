from __future__ import annotations

import logging
import re
from typing import Any
from uuid import UUID

from lms.core.errors import (
    AuthenticationError,
    ConflictError,
    DuplicateKeyError,
    InvalidOperation,
    NotFoundError,
    ValidationError,
)
from lms.models.user import User, normalize_role
from lms.repos.user_repo import UserRepo
from lms.services import auth_service

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_password(password: str, *, field: str = "Password") -> None:
    if len(password) < auth_service.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"{field} must be at least {auth_service.MIN_PASSWORD_LENGTH} characters"
        )


class UserService:
    def __init__(self, users: UserRepo) -> None:
        self._users = users

    async def register(self, *, name: str, email: str, password: str) -> User:
        """Self-service sign-up.  Always creates a student."""
        email = email.strip().lower()
        name = name.strip()
        if not name:
            raise ValidationError("Name is required")
        if not _EMAIL_RE.match(email):
            raise ValidationError("Invalid email address")
        _check_password(password)

        if await self._users.get_by_email(email) is not None:
            logger.warning("Rejected duplicate email=%s", email)
            raise ConflictError("A user with this email already exists")

        user = User.new(
            email=email, password_hash=auth_service.hash_password(password), name=name
        )
        try:
            await self._users.add(user)
        except DuplicateKeyError:
            # another request registered the same email first
            raise ConflictError("A user with this email already exists") from None

        logger.info("User registered  user_id=%s email=%s", user.id, email)
        return user

    async def get(self, user_id: UUID) -> User:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def update_profile(self, user_id: UUID, **fields: Any) -> User:
        if "name" in fields and fields["name"] is not None:
            fields["name"] = fields["name"].strip()
            if not fields["name"]:
                raise ValidationError("Name cannot be empty")
        changes = {k: v for k, v in fields.items() if v is not None}
        user = await self._users.update_profile(user_id, **changes)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def change_password(
        self, user_id: UUID, *, current_password: str, new_password: str
    ) -> None:
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required")
        _check_password(new_password, field="New password")
        user = await self.get(user_id)
        if not auth_service.verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        await self._users.update_password_hash(
            user_id, auth_service.hash_password(new_password)
        )
        logger.info("Password changed  user_id=%s", user_id)

    async def deactivate(
        self, user_id: UUID, *, admin_actor_id: UUID | None = None
    ) -> User:
        """Soft delete: the row stays, login stops working.

        An admin acting on their own account is refused, the same as
        ``toggle_active``; other users may still close their own account.
        """
        if admin_actor_id is not None and admin_actor_id == user_id:
            raise InvalidOperation("Cannot deactivate your own account")
        user = await self._users.set_active(user_id, False)
        if user is None:
            raise NotFoundError("User not found")
        logger.info("User deactivated  user_id=%s", user_id)
        return user

    async def list_users(
        self,
        *,
        role: str | None = None,
        is_active: bool | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        if role is not None:
            normalized = normalize_role(role)
            if normalized is None:
                raise ValidationError("Valid role is required (admin, teacher, student)")
            role = normalized
        return await self._users.list_users(
            role=role, is_active=is_active, offset=offset, limit=limit
        )

    # --- admin ---

    async def change_role(self, actor_id: UUID, target_id: UUID, role: str) -> User:
        normalized = normalize_role(role)
        if normalized is None:
            raise ValidationError("Valid role is required (admin, teacher, student)")
        await self.get(target_id)
        if actor_id == target_id:
            raise InvalidOperation("Cannot change your own role")
        user = await self._users.set_role(target_id, normalized)
        if user is None:
            raise NotFoundError("User not found")
        logger.info("Role changed  user_id=%s role=%s by=%s", target_id, normalized, actor_id)
        return user

    async def toggle_active(self, actor_id: UUID, target_id: UUID) -> User:
        target = await self.get(target_id)
        if actor_id == target_id:
            raise InvalidOperation("Cannot deactivate your own account")
        user = await self._users.set_active(target_id, not target.is_active)
        if user is None:
            raise NotFoundError("User not found")
        logger.info(
            "User %s  user_id=%s by=%s",
            "activated" if user.is_active else "deactivated",
            target_id,
            actor_id,
        )
        return user

    async def delete_permanently(self, actor_id: UUID, target_id: UUID) -> None:
        await self.get(target_id)
        if actor_id == target_id:
            raise InvalidOperation("Cannot delete your own account")
        await self._users.delete(target_id)
        logger.info("User deleted permanently  user_id=%s by=%s", target_id, actor_id)
