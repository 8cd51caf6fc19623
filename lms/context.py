"""Application context: every long-lived object the service needs.

Built once from Settings when the app starts, stored on ``app.state``,
closed when it stops.  Handlers reach it through ``get_context`` in
api/dependencies.py; nothing else in the package holds process-wide state.

Backends are chosen here and only here:

    DATABASE_URL set   -> Pg* repositories on one async engine
    DATABASE_URL unset -> in-memory repositories
    REDIS_URL set      -> Redis token blacklist
    REDIS_URL unset    -> in-memory token blacklist
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from lms.core.config import Settings
from lms.db.engine import check_database, create_session_factory
from lms.db.redis import create_redis, ping_redis
from lms.repos.course_repo import CourseRepo, InMemoryCourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from lms.repos.payment_repo import InMemoryPaymentRepo, PaymentRepo
from lms.repos.user_repo import InMemoryUserRepo, UserRepo
from lms.services.admin_service import AdminService
from lms.services.course_service import CourseService
from lms.services.enrollment_service import EnrollmentService
from lms.services.payment_gateway import PaymentGateway
from lms.services.payment_service import PaymentService
from lms.services.token_blacklist import (
    InMemoryTokenBlacklist,
    RedisTokenBlacklist,
    TokenBlacklist,
)
from lms.services.token_service import TokenService
from lms.services.users_service import UserService

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    users: UserRepo
    courses: CourseRepo
    payments: PaymentRepo
    enrollments: EnrollmentRepo
    tokens: TokenService
    blacklist: TokenBlacklist
    gateway: PaymentGateway
    http: httpx.AsyncClient
    user_service: UserService
    course_service: CourseService
    enrollment_service: EnrollmentService
    payment_service: PaymentService
    admin_service: AdminService
    engine: AsyncEngine | None = None
    redis: Any = None
    _closed: bool = field(default=False, repr=False)

    async def check_database(self) -> bool | None:
        """None when no database is configured."""
        if self.engine is None:
            return None
        try:
            await check_database(self.engine)
        except Exception:
            logger.exception("Database readiness check failed")
            return False
        return True

    async def check_redis(self) -> bool | None:
        if self.redis is None:
            return None
        return await ping_redis(self.redis)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.http.aclose()
        if self.redis is not None:
            await self.redis.aclose()
            logger.info("Redis connection pool closed")
        if self.engine is not None:
            await self.engine.dispose()
            logger.info("Database engine disposed")


def build_context(
    settings: Settings,
    *,
    http: httpx.AsyncClient | None = None,
    blacklist: TokenBlacklist | None = None,
) -> AppContext:
    engine: AsyncEngine | None = None
    users: UserRepo
    courses: CourseRepo
    payments: PaymentRepo
    enrollments: EnrollmentRepo

    if settings.database_url:
        from lms.repos.pg_course_repo import PgCourseRepo
        from lms.repos.pg_enrollment_repo import PgEnrollmentRepo
        from lms.repos.pg_payment_repo import PgPaymentRepo
        from lms.repos.pg_user_repo import PgUserRepo

        engine, sessions = create_session_factory(
            settings.database_url, echo=settings.is_dev and settings.log_level == "debug"
        )
        users = PgUserRepo(sessions)
        courses = PgCourseRepo(sessions)
        payments = PgPaymentRepo(sessions)
        enrollments = PgEnrollmentRepo(sessions)
    else:
        logger.info("No DATABASE_URL configured; using in-memory repositories")
        users = InMemoryUserRepo()
        courses = InMemoryCourseRepo()
        payments = InMemoryPaymentRepo()
        enrollments = InMemoryEnrollmentRepo()

    redis_client = None
    if blacklist is None:
        if settings.redis_url:
            redis_client = create_redis(settings.redis_url)
            blacklist = RedisTokenBlacklist(redis_client)
        else:
            logger.info("No REDIS_URL configured; token blacklist is in-memory")
            blacklist = InMemoryTokenBlacklist()

    http = http or httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)
    gateway = PaymentGateway.from_settings(settings, http)
    enrollment_service = EnrollmentService(enrollments, courses, users)

    return AppContext(
        settings=settings,
        users=users,
        courses=courses,
        payments=payments,
        enrollments=enrollments,
        tokens=TokenService.from_settings(settings),
        blacklist=blacklist,
        gateway=gateway,
        http=http,
        user_service=UserService(users),
        course_service=CourseService(courses, enrollments),
        enrollment_service=enrollment_service,
        payment_service=PaymentService(
            payments,
            courses,
            users,
            enrollment_service,
            gateway,
            default_currency=settings.default_currency,
        ),
        admin_service=AdminService(users, courses, enrollments, payments),
        engine=engine,
        redis=redis_client,
    )
