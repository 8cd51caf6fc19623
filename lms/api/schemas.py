"""Request/response schemas.

Python attributes are snake_case; JSON is camelCase.  ``ApiModel``
generates the aliases, FastAPI serializes response models by alias, and
``populate_by_name`` lets request bodies use either spelling.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lms.models.course import Course, CourseModule, Material
from lms.models.enrollment import Enrollment
from lms.models.payment import Payment
from lms.models.user import User

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Page(ApiModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: list[T], total: int, page: int, limit: int) -> Page[T]:
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=(total + limit - 1) // limit if limit else 0,
        )


class MessageOut(ApiModel):
    message: str


# --- users / auth ---


class UserOut(ApiModel):
    id: str
    email: str
    name: str
    role: str
    is_paid: bool
    is_active: bool
    bio: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @classmethod
    def from_domain(cls, u: User) -> UserOut:
        return cls(
            id=str(u.id),
            email=u.email,
            name=u.name,
            role=u.role,
            is_paid=u.is_paid,
            is_active=u.is_active,
            bio=u.bio,
            phone=u.phone,
            avatar_url=u.avatar_url,
            created_at=u.created_at,
            last_login_at=u.last_login_at,
        )


class RegisterIn(ApiModel):
    name: str
    email: str
    password: str


class LoginIn(ApiModel):
    email: str
    password: str


class RefreshIn(ApiModel):
    refresh_token: str | None = None


class AuthResponse(ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserOut


class UserUpdateIn(ApiModel):
    name: str | None = None
    bio: str | None = None
    phone: str | None = None
    avatar_url: str | None = None


class PasswordChangeIn(ApiModel):
    current_password: str
    new_password: str


class RoleChangeIn(ApiModel):
    role: str


# --- courses / materials ---


class ModuleSchema(ApiModel):
    title: str
    order: int = 0
    description: str | None = None
    material_ids: list[UUID] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, m: CourseModule) -> ModuleSchema:
        return cls(
            title=m.title,
            order=m.order,
            description=m.description,
            material_ids=list(m.material_ids),
        )


class CourseIn(ApiModel):
    title: str
    description: str
    price: float = Field(default=0, ge=0)
    currency: str = "USD"
    category: str = "Other"
    tags: list[str] = Field(default_factory=list)
    level: str = "Beginner"
    thumbnail_url: str | None = None
    duration_hours: float = Field(default=0, ge=0)


class CourseUpdateIn(ApiModel):
    title: str | None = None
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    currency: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    level: str | None = None
    status: str | None = None
    thumbnail_url: str | None = None
    duration_hours: float | None = Field(default=None, ge=0)
    modules: list[ModuleSchema] | None = None


class CourseOut(ApiModel):
    id: str
    title: str
    description: str
    instructor_id: str
    price: float
    currency: str
    category: str
    tags: list[str]
    level: str
    status: str
    thumbnail_url: str | None
    duration_hours: float
    modules: list[ModuleSchema]
    enrollment_count: int
    rating_average: float
    rating_count: int
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, c: Course) -> CourseOut:
        return cls(
            id=str(c.id),
            title=c.title,
            description=c.description,
            instructor_id=str(c.instructor_id),
            price=c.price,
            currency=c.currency,
            category=c.category,
            tags=list(c.tags),
            level=c.level,
            status=c.status,
            thumbnail_url=c.thumbnail_url,
            duration_hours=c.duration_hours,
            modules=[ModuleSchema.from_domain(m) for m in c.modules],
            enrollment_count=c.enrollment_count,
            rating_average=c.rating_average,
            rating_count=c.rating_count,
            created_at=c.created_at,
            updated_at=c.updated_at,
        )


class MaterialIn(ApiModel):
    title: str
    url: str
    type: str = "other"
    mime_type: str | None = None
    duration_seconds: int = Field(default=0, ge=0)
    order: int = 0
    is_preview: bool = False


class MaterialUpdateIn(ApiModel):
    title: str | None = None
    url: str | None = None
    type: str | None = None
    mime_type: str | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    order: int | None = None
    is_preview: bool | None = None


class MaterialOut(ApiModel):
    id: str
    course_id: str
    title: str
    url: str
    type: str
    mime_type: str | None
    duration_seconds: int
    order: int
    is_preview: bool
    created_at: datetime | None

    @classmethod
    def from_domain(cls, m: Material) -> MaterialOut:
        return cls(
            id=str(m.id),
            course_id=str(m.course_id),
            title=m.title,
            url=m.url,
            type=m.type,
            mime_type=m.mime_type,
            duration_seconds=m.duration_seconds,
            order=m.order,
            is_preview=m.is_preview,
            created_at=m.created_at,
        )


class MaterialsOut(ApiModel):
    materials: list[MaterialOut]
    has_full_access: bool


# --- enrollments ---


class EnrollIn(ApiModel):
    course_id: UUID


class ProgressOut(ApiModel):
    completed_material_ids: list[str]
    percentage: int
    last_accessed_at: datetime | None


class EnrollmentOut(ApiModel):
    id: str
    student_id: str
    course_id: str
    payment_status: str
    payment_id: str | None
    access_granted: bool
    enrolled_at: datetime | None
    expiry_date: datetime | None
    progress: ProgressOut

    @classmethod
    def from_domain(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            id=str(e.id),
            student_id=str(e.student_id),
            course_id=str(e.course_id),
            payment_status=e.payment_status,
            payment_id=str(e.payment_id) if e.payment_id else None,
            access_granted=e.access_granted,
            enrolled_at=e.enrolled_at,
            expiry_date=e.expiry_date,
            progress=ProgressOut(
                completed_material_ids=[str(m) for m in e.progress.completed_material_ids],
                percentage=e.progress.percentage,
                last_accessed_at=e.progress.last_accessed_at,
            ),
        )


class MyCourseOut(ApiModel):
    enrollment: EnrollmentOut
    course: CourseOut | None


class AccessCheckOut(ApiModel):
    course_id: str
    has_access: bool
    enrolled: bool
    payment_status: str | None = None
    access_granted: bool = False
    expiry_date: datetime | None = None
    enrollment_id: str | None = None


class ProgressIn(ApiModel):
    material_id: UUID | None = None
    percentage: int | None = None


class ManualEnrollIn(ApiModel):
    student_id: UUID
    course_id: UUID
    grant_access: bool = True
    expiry_date: datetime | None = None


class AccessUpdateIn(ApiModel):
    access_granted: bool
    expiry_date: datetime | None = None
    clear_expiry: bool = False


# --- payments ---


class PaymentInitiateIn(ApiModel):
    course_id: UUID | None = None
    amount: float | None = None
    currency: str | None = None
    method: str | None = None
    provider: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentInitiatedOut(ApiModel):
    message: str = "Payment initiated"
    payment_id: str
    reference: str
    amount: float
    currency: str
    status: str
    checkout_url: str
    method: str
    provider: str


class PaymentOut(ApiModel):
    id: str
    user_id: str
    course_id: str | None
    amount: float
    currency: str
    method: str
    provider: str
    reference: str
    status: str
    transaction_id: str | None
    metadata: dict[str, Any]
    paid_at: datetime | None
    refunded_at: datetime | None
    refund_reason: str | None
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, p: Payment) -> PaymentOut:
        return cls(
            id=str(p.id),
            user_id=str(p.user_id),
            course_id=str(p.course_id) if p.course_id else None,
            amount=p.amount,
            currency=p.currency,
            method=p.method,
            provider=p.provider,
            reference=p.reference,
            status=p.status,
            transaction_id=p.transaction_id,
            metadata=dict(p.metadata),
            paid_at=p.paid_at,
            refunded_at=p.refunded_at,
            refund_reason=p.refund_reason,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class PaymentActionIn(ApiModel):
    reason: str | None = None
    transaction_id: str | None = None


class WebhookOut(ApiModel):
    message: str
    reference: str
    status: str
    applied: bool


# --- admin ---


class TopCourseOut(ApiModel):
    id: str
    title: str
    enrollment_count: int
    price: float
    thumbnail_url: str | None


class AnalyticsOut(ApiModel):
    users: dict[str, int]
    courses: dict[str, int]
    enrollments: dict[str, int]
    revenue: dict[str, float]
    top_courses: list[TopCourseOut]


class CourseRevenueOut(ApiModel):
    course_id: str | None
    title: str | None
    revenue: float
    sales: int


class RevenueOut(ApiModel):
    period: str
    since: datetime
    total_revenue: float
    total_transactions: int
    average_transaction: float
    top_courses: list[CourseRevenueOut]
