from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.api.access import check_owner_or_admin
from lms.api.dependencies import Ctx, CurrentUser, StudentUser
from lms.api.schemas import (
    AccessCheckOut,
    CourseOut,
    EnrollIn,
    EnrollmentOut,
    MyCourseOut,
    ProgressIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrollments", tags=["enrollments"])


@router.post("", response_model=EnrollmentOut, status_code=status.HTTP_201_CREATED)
async def enroll(payload: EnrollIn, principal: StudentUser, ctx: Ctx) -> EnrollmentOut:
    enrollment = await ctx.enrollment_service.enroll(principal.uid, payload.course_id)
    return EnrollmentOut.from_domain(enrollment)


# Fixed paths first: /{enrollment_id} would otherwise swallow them.


@router.get("/my-courses", response_model=list[MyCourseOut])
async def my_courses(
    principal: CurrentUser,
    ctx: Ctx,
    payment_status: Annotated[str | None, Query(alias="status")] = None,
) -> list[MyCourseOut]:
    rows = await ctx.enrollment_service.my_courses(
        principal.uid, payment_status=payment_status
    )
    return [
        MyCourseOut(
            enrollment=EnrollmentOut.from_domain(e),
            course=CourseOut.from_domain(c) if c is not None else None,
        )
        for e, c in rows
    ]


@router.get("/check-access/{course_id}", response_model=AccessCheckOut)
async def check_access(
    course_id: UUID, principal: CurrentUser, ctx: Ctx
) -> AccessCheckOut:
    result = await ctx.enrollment_service.check_access(principal, course_id)
    e = result.enrollment
    return AccessCheckOut(
        course_id=str(course_id),
        has_access=result.has_access,
        enrolled=result.enrolled,
        payment_status=e.payment_status if e else None,
        access_granted=e.access_granted if e else False,
        expiry_date=e.expiry_date if e else None,
        enrollment_id=str(e.id) if e else None,
    )


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(
    enrollment_id: UUID, principal: CurrentUser, ctx: Ctx
) -> EnrollmentOut:
    enrollment = await ctx.enrollment_service.get(enrollment_id)
    check_owner_or_admin(principal, enrollment.student_id)
    return EnrollmentOut.from_domain(enrollment)


@router.put("/{enrollment_id}/progress", response_model=EnrollmentOut)
async def update_progress(
    enrollment_id: UUID, payload: ProgressIn, principal: CurrentUser, ctx: Ctx
) -> EnrollmentOut:
    enrollment = await ctx.enrollment_service.update_progress(
        principal,
        enrollment_id,
        material_id=payload.material_id,
        percentage=payload.percentage,
    )
    return EnrollmentOut.from_domain(enrollment)
