from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from lms.context import AppContext, build_context
from lms.core.config import Settings
from lms.main import create_app
from lms.models.course import Course
from lms.models.user import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER, User
from lms.services import auth_service
from lms.services.payment_gateway import sign_payload

WEBHOOK_SECRET = "test-webhook-secret"
PASSWORD = "s3cure-pass"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "port": 8000,
        "database_url": None,
        "redis_url": None,
        "webhook_secret": WEBHOOK_SECRET,
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def ctx(settings: Settings) -> AppContext:
    """Fresh in-memory context per test: no state leaks between tests."""
    return build_context(settings)


@pytest.fixture
def client(ctx: AppContext) -> TestClient:
    return TestClient(create_app(ctx.settings, ctx))


def run(coro):
    return asyncio.run(coro)


def seed_user(
    ctx: AppContext,
    *,
    role: str = ROLE_STUDENT,
    email: str | None = None,
    name: str = "Test User",
    password: str = PASSWORD,
) -> User:
    user = User.new(
        email=email or f"{role}-{uuid4().hex[:8]}@example.com",
        password_hash=auth_service.hash_password(password),
        name=name,
        role=role,
    )
    run(ctx.users.add(user))
    return user


def seed_course(
    ctx: AppContext,
    instructor: User,
    *,
    price: float = 20.0,
    published: bool = True,
    title: str = "Intro to Python",
) -> Course:
    course = Course.new(
        title=title,
        instructor_id=instructor.id,
        description="Learn Python from scratch",
        price=price,
    )
    run(ctx.courses.add(course))
    if published:
        course = run(ctx.courses.update(course.id, status="published"))
    return course


def bearer(ctx: AppContext, user: User) -> dict[str, str]:
    token = ctx.tokens.create_access_token(sub=str(user.id), roles=list(user.roles))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(ctx: AppContext) -> User:
    return seed_user(ctx, role=ROLE_ADMIN, email="admin@example.com", name="Ada Admin")


@pytest.fixture
def teacher(ctx: AppContext) -> User:
    return seed_user(
        ctx, role=ROLE_TEACHER, email="teacher@example.com", name="Tom Teacher"
    )


@pytest.fixture
def student(ctx: AppContext) -> User:
    return seed_user(
        ctx, role=ROLE_STUDENT, email="student@example.com", name="Sam Student"
    )


@pytest.fixture
def course(ctx: AppContext, teacher: User) -> Course:
    return seed_course(ctx, teacher)


@pytest.fixture
def auth_headers(ctx: AppContext) -> Callable[[User], dict[str, str]]:
    return lambda user: bearer(ctx, user)


def sign(payload: dict[str, Any], secret: str = WEBHOOK_SECRET) -> dict[str, str]:
    return {"X-Webhook-Signature": sign_payload(payload, secret)}
