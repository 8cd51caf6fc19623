from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.api.dependencies import AdminUser, Ctx, Pagination, TeacherOrAdmin
from lms.api.schemas import (
    AccessUpdateIn,
    AnalyticsOut,
    CourseRevenueOut,
    EnrollmentOut,
    ManualEnrollIn,
    MessageOut,
    Page,
    RevenueOut,
    RoleChangeIn,
    TopCourseOut,
    UserOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# --- users ---


@router.put("/users/{user_id}/role", response_model=UserOut)
async def change_role(
    user_id: UUID, payload: RoleChangeIn, admin: AdminUser, ctx: Ctx
) -> UserOut:
    user = await ctx.user_service.change_role(admin.uid, user_id, payload.role)
    return UserOut.from_domain(user)


@router.put("/users/{user_id}/toggle-active", response_model=UserOut)
async def toggle_active(user_id: UUID, admin: AdminUser, ctx: Ctx) -> UserOut:
    user = await ctx.user_service.toggle_active(admin.uid, user_id)
    return UserOut.from_domain(user)


@router.delete("/users/{user_id}", response_model=MessageOut)
async def delete_user_permanently(
    user_id: UUID, admin: AdminUser, ctx: Ctx
) -> MessageOut:
    await ctx.user_service.delete_permanently(admin.uid, user_id)
    return MessageOut(message="User deleted permanently")


# --- enrollments ---


@router.post(
    "/enrollments/manual",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def manual_enrollment(
    payload: ManualEnrollIn, admin: AdminUser, ctx: Ctx
) -> EnrollmentOut:
    enrollment = await ctx.enrollment_service.manual_enroll(
        payload.student_id,
        payload.course_id,
        grant_access=payload.grant_access,
        expiry_date=payload.expiry_date,
    )
    logger.info("Manual enrollment by admin=%s", admin.user_id)
    return EnrollmentOut.from_domain(enrollment)


@router.put("/enrollments/{enrollment_id}/access", response_model=EnrollmentOut)
async def update_access(
    enrollment_id: UUID, payload: AccessUpdateIn, _admin: AdminUser, ctx: Ctx
) -> EnrollmentOut:
    enrollment = await ctx.enrollment_service.set_access(
        enrollment_id,
        grant=payload.access_granted,
        expiry_date=payload.expiry_date,
        clear_expiry=payload.clear_expiry,
    )
    return EnrollmentOut.from_domain(enrollment)


@router.get("/enrollments", response_model=Page[EnrollmentOut])
async def list_enrollments(
    _admin: AdminUser,
    ctx: Ctx,
    paging: Pagination,
    payment_status: Annotated[str | None, Query(alias="status")] = None,
    course_id: Annotated[UUID | None, Query(alias="courseId")] = None,
) -> Page[EnrollmentOut]:
    page, limit = paging
    enrollments, total = await ctx.enrollment_service.list_all(
        payment_status=payment_status,
        course_id=course_id,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return Page[EnrollmentOut].build(
        [EnrollmentOut.from_domain(e) for e in enrollments], total, page, limit
    )


# --- reporting ---


@router.get("/analytics", response_model=AnalyticsOut)
async def analytics(_principal: TeacherOrAdmin, ctx: Ctx) -> AnalyticsOut:
    a = await ctx.admin_service.analytics()
    return AnalyticsOut(
        users={"total": a.total_users, "students": a.students, "teachers": a.teachers},
        courses={
            "total": a.total_courses,
            "published": a.published_courses,
            "draft": a.total_courses - a.published_courses,
        },
        enrollments={
            "total": a.total_enrollments,
            "active": a.active_enrollments,
            "recent": a.recent_enrollments,
        },
        revenue={"total": a.total_revenue, "pendingPayments": a.pending_payments},
        top_courses=[
            TopCourseOut(
                id=str(c.id),
                title=c.title,
                enrollment_count=c.enrollment_count,
                price=c.price,
                thumbnail_url=c.thumbnail_url,
            )
            for c in a.top_courses
        ],
    )


@router.get("/revenue", response_model=RevenueOut)
async def revenue(_admin: AdminUser, ctx: Ctx, period: str = "month") -> RevenueOut:
    r = await ctx.admin_service.revenue(period)
    return RevenueOut(
        period=r.period,
        since=r.since,
        total_revenue=r.total_revenue,
        total_transactions=r.total_transactions,
        average_transaction=r.average_transaction,
        top_courses=[
            CourseRevenueOut(
                course_id=str(c.course_id) if c.course_id else None,
                title=c.title,
                revenue=c.revenue,
                sales=c.sales,
            )
            for c in r.top_courses
        ],
    )
