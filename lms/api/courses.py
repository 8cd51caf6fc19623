from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from lms.api.dependencies import (
    AdminUser,
    Ctx,
    CurrentUser,
    MaybeUser,
    Pagination,
    TeacherOrAdmin,
)
from lms.api.schemas import (
    CourseIn,
    CourseOut,
    CourseUpdateIn,
    EnrollmentOut,
    MaterialIn,
    MaterialOut,
    MaterialsOut,
    MaterialUpdateIn,
    MessageOut,
    Page,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["courses"])


# --- catalog ---


@router.get("/courses", response_model=Page[CourseOut])
async def list_courses(
    principal: MaybeUser,
    ctx: Ctx,
    paging: Pagination,
    category: str | None = None,
    level: str | None = None,
    instructor_id: Annotated[UUID | None, Query(alias="instructorId")] = None,
    search: str | None = None,
) -> Page[CourseOut]:
    page, limit = paging
    courses, total = await ctx.course_service.list_courses(
        principal,
        category=category,
        level=level,
        instructor_id=instructor_id,
        search=search,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return Page[CourseOut].build(
        [CourseOut.from_domain(c) for c in courses], total, page, limit
    )


@router.post("/courses", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseIn, principal: TeacherOrAdmin, ctx: Ctx
) -> CourseOut:
    fields = payload.model_dump()
    fields["tags"] = tuple(fields["tags"])
    course = await ctx.course_service.create_course(principal, **fields)
    return CourseOut.from_domain(course)


@router.get("/courses/{course_id}", response_model=CourseOut)
async def get_course(course_id: UUID, principal: MaybeUser, ctx: Ctx) -> CourseOut:
    return CourseOut.from_domain(await ctx.course_service.get_course(principal, course_id))


@router.put("/courses/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: UUID, payload: CourseUpdateIn, principal: TeacherOrAdmin, ctx: Ctx
) -> CourseOut:
    fields = payload.model_dump(exclude_unset=True)
    course = await ctx.course_service.update_course(principal, course_id, **fields)
    return CourseOut.from_domain(course)


@router.put("/courses/{course_id}/publish", response_model=CourseOut)
async def publish_course(
    course_id: UUID, principal: TeacherOrAdmin, ctx: Ctx
) -> CourseOut:
    return CourseOut.from_domain(await ctx.course_service.publish(principal, course_id))


@router.delete("/courses/{course_id}", response_model=MessageOut)
async def delete_course(course_id: UUID, _admin: AdminUser, ctx: Ctx) -> MessageOut:
    await ctx.course_service.delete_course(course_id)
    return MessageOut(message="Course deleted successfully")


@router.get("/courses/{course_id}/enrollments", response_model=list[EnrollmentOut])
async def course_enrollments(
    course_id: UUID, principal: TeacherOrAdmin, ctx: Ctx
) -> list[EnrollmentOut]:
    enrollments = await ctx.course_service.course_enrollments(principal, course_id)
    return [EnrollmentOut.from_domain(e) for e in enrollments]


# --- materials ---


@router.get("/courses/{course_id}/materials", response_model=MaterialsOut)
async def list_materials(
    course_id: UUID, principal: CurrentUser, ctx: Ctx
) -> MaterialsOut:
    materials, full = await ctx.course_service.list_materials(principal, course_id)
    return MaterialsOut(
        materials=[MaterialOut.from_domain(m) for m in materials], has_full_access=full
    )


@router.post(
    "/courses/{course_id}/materials",
    response_model=MaterialOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_material(
    course_id: UUID, payload: MaterialIn, principal: TeacherOrAdmin, ctx: Ctx
) -> MaterialOut:
    material = await ctx.course_service.add_material(
        principal, course_id, **payload.model_dump()
    )
    return MaterialOut.from_domain(material)


@router.get("/materials/{material_id}", response_model=MaterialOut)
async def get_material(material_id: UUID, principal: CurrentUser, ctx: Ctx) -> MaterialOut:
    return MaterialOut.from_domain(
        await ctx.course_service.get_material(principal, material_id)
    )


@router.put("/materials/{material_id}", response_model=MaterialOut)
async def update_material(
    material_id: UUID, payload: MaterialUpdateIn, principal: TeacherOrAdmin, ctx: Ctx
) -> MaterialOut:
    material = await ctx.course_service.update_material(
        principal, material_id, **payload.model_dump(exclude_unset=True)
    )
    return MaterialOut.from_domain(material)


@router.delete("/materials/{material_id}", response_model=MessageOut)
async def delete_material(
    material_id: UUID, principal: TeacherOrAdmin, ctx: Ctx
) -> MessageOut:
    await ctx.course_service.delete_material(principal, material_id)
    return MessageOut(message="Material deleted successfully")
