"""Dashboard analytics and revenue reporting."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID

from lms.core.errors import ValidationError
from lms.models.course import Course
from lms.models.payment import COMPLETED, PENDING
from lms.models.user import ROLE_STUDENT, ROLE_TEACHER
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.repos.payment_repo import PaymentRepo
from lms.repos.user_repo import UserRepo

REVENUE_PERIODS = ("day", "week", "month", "year")


def period_start(period: str, now: datetime) -> datetime:
    if period == "day":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now - timedelta(days=30)
    if period == "year":
        return now - timedelta(days=365)
    raise ValidationError("Period must be one of: " + ", ".join(REVENUE_PERIODS))


@dataclass(frozen=True, slots=True)
class Analytics:
    total_users: int
    students: int
    teachers: int
    total_courses: int
    published_courses: int
    total_enrollments: int
    active_enrollments: int
    recent_enrollments: int
    total_revenue: float
    pending_payments: int
    top_courses: list[Course] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CourseRevenue:
    course_id: UUID | None
    title: str | None
    revenue: float
    sales: int


@dataclass(frozen=True, slots=True)
class RevenueReport:
    period: str
    since: datetime
    total_revenue: float
    total_transactions: int
    average_transaction: float
    top_courses: list[CourseRevenue]


class AdminService:
    def __init__(
        self,
        users: UserRepo,
        courses: CourseRepo,
        enrollments: EnrollmentRepo,
        payments: PaymentRepo,
    ) -> None:
        self._users = users
        self._courses = courses
        self._enrollments = enrollments
        self._payments = payments

    async def analytics(self, now: datetime | None = None) -> Analytics:
        now = now or datetime.now(UTC)
        completed_payments = await self._payments.completed_since(None)
        _, pending = await self._payments.list_payments(status=PENDING, limit=1)
        _, active = await self._enrollments.list_enrollments(
            payment_status=COMPLETED, access_granted=True, limit=1
        )
        all_enrollments, total_enrollments = await self._enrollments.list_enrollments(
            limit=100_000
        )
        week_ago = now - timedelta(days=7)
        recent = sum(
            1 for e in all_enrollments if e.enrolled_at is not None and e.enrolled_at >= week_ago
        )
        return Analytics(
            total_users=await self._users.count(),
            students=await self._users.count(role=ROLE_STUDENT),
            teachers=await self._users.count(role=ROLE_TEACHER),
            total_courses=await self._courses.count(),
            published_courses=await self._courses.count(status="published"),
            total_enrollments=total_enrollments,
            active_enrollments=active,
            recent_enrollments=recent,
            total_revenue=round(sum(p.amount for p in completed_payments), 2),
            pending_payments=pending,
            top_courses=await self._courses.top_courses(5),
        )

    async def revenue(self, period: str = "month", now: datetime | None = None) -> RevenueReport:
        now = now or datetime.now(UTC)
        since = period_start(period, now)
        payments = await self._payments.completed_since(since)

        by_course: dict[UUID | None, list[float]] = defaultdict(list)
        for p in payments:
            by_course[p.course_id].append(p.amount)

        ranked = sorted(by_course.items(), key=lambda kv: sum(kv[1]), reverse=True)[:10]
        top: list[CourseRevenue] = []
        for course_id, amounts in ranked:
            course = await self._courses.get(course_id) if course_id is not None else None
            top.append(
                CourseRevenue(
                    course_id=course_id,
                    title=course.title if course is not None else None,
                    revenue=round(sum(amounts), 2),
                    sales=len(amounts),
                )
            )

        total = round(sum(p.amount for p in payments), 2)
        count = len(payments)
        return RevenueReport(
            period=period,
            since=since,
            total_revenue=total,
            total_transactions=count,
            average_transaction=round(total / count, 2) if count else 0.0,
            top_courses=top,
        )
