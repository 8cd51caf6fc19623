from __future__ import annotations

import asyncio

from argon2 import PasswordHasher

from lms.models.user import User
from lms.repos.user_repo import InMemoryUserRepo
from lms.services.auth_service import authenticate_user, hash_password, verify_password


def _repo_with(user: User) -> InMemoryUserRepo:
    repo = InMemoryUserRepo()
    asyncio.run(repo.add(user))
    return repo


def test_hash_and_verify() -> None:
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong horse", hashed) is False


def test_verify_tolerates_garbage_hash() -> None:
    assert verify_password("anything", "not-an-argon2-hash") is False


def test_authenticate_records_login_time() -> None:
    repo = _repo_with(User.new(email="a@example.com", password_hash=hash_password("pw1234")))
    assert asyncio.run(authenticate_user(repo, "a@example.com", "pw1234")) is not None
    stored = asyncio.run(repo.get_by_email("a@example.com"))
    assert stored.last_login_at is not None


def test_authenticate_refuses_inactive_user() -> None:
    user = User.new(email="a@example.com", password_hash=hash_password("pw1234"))
    repo = _repo_with(user)
    asyncio.run(repo.set_active(user.id, False))
    assert asyncio.run(authenticate_user(repo, "a@example.com", "pw1234")) is None


def test_authenticate_unknown_email() -> None:
    repo = InMemoryUserRepo()
    assert asyncio.run(authenticate_user(repo, "ghost@example.com", "pw1234")) is None


def test_authenticate_rehashes_weak_hash() -> None:
    old_ph = PasswordHasher(time_cost=1, memory_cost=8 * 1024, parallelism=1)
    old_hash = old_ph.hash("pw1234")
    repo = _repo_with(User.new(email="a@example.com", password_hash=old_hash))

    assert asyncio.run(authenticate_user(repo, "a@example.com", "pw1234")) is not None
    stored = asyncio.run(repo.get_by_email("a@example.com"))
    assert stored.password_hash != old_hash
    assert verify_password("pw1234", stored.password_hash)
