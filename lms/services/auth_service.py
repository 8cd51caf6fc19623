from __future__ import annotations

import logging

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from lms.models.user import User
from lms.repos.user_repo import UserRepo

# Argon2 hash strings encode parameters + salt
logger = logging.getLogger(__name__)

_ph = PasswordHasher()

MIN_PASSWORD_LENGTH = 6


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("password must be non-empty")
    return _ph.hash(plain_password)


# Argon2 raises on mismatch; callers only want a bool
def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return _ph.verify(password_hash, plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHash):
        return False


async def authenticate_user(repo: UserRepo, email: str, password: str) -> User | None:
    """Return the user for valid credentials, else None.

    Unknown email, inactive account and wrong password all look the same
    to the caller.
    """
    user = await repo.get_by_email(email)
    if user is None:
        return None
    if not user.is_active:
        logger.info("Login refused for inactive user=%s", user.id)
        return None
    if not verify_password(password, user.password_hash):
        return None

    if _ph.check_needs_rehash(user.password_hash):
        await repo.update_password_hash(user.id, _ph.hash(password))
        logger.info("Rehashed password for user=%s", user.id)

    await repo.touch_login(user.id)
    return user
