from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from lms.core.errors import AuthorizationError, NotFoundError, ValidationError
from lms.models.course import (
    COURSE_CATEGORIES,
    COURSE_LEVELS,
    COURSE_STATUSES,
    MATERIAL_TYPES,
    Course,
    CourseModule,
    Material,
)
from lms.models.enrollment import Enrollment
from lms.models.principal import Principal
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.services import access_policy

logger = logging.getLogger(__name__)


def _validate_course_fields(fields: dict[str, Any]) -> dict[str, Any]:
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("Title is required")
    if "price" in fields and fields["price"] < 0:
        raise ValidationError("Price cannot be negative")
    if "category" in fields and fields["category"] not in COURSE_CATEGORIES:
        raise ValidationError("Category must be one of: " + ", ".join(COURSE_CATEGORIES))
    if "level" in fields and fields["level"] not in COURSE_LEVELS:
        raise ValidationError("Level must be one of: " + ", ".join(COURSE_LEVELS))
    if "status" in fields and fields["status"] not in COURSE_STATUSES:
        raise ValidationError("Status must be one of: " + ", ".join(COURSE_STATUSES))
    if "currency" in fields:
        fields["currency"] = fields["currency"].upper()
    if "tags" in fields:
        fields["tags"] = tuple(fields["tags"])
    if "modules" in fields:
        fields["modules"] = tuple(
            m
            if isinstance(m, CourseModule)
            else CourseModule(
                title=m["title"],
                order=m.get("order", 0),
                description=m.get("description"),
                material_ids=tuple(m.get("material_ids", ())),
            )
            for m in fields["modules"]
        )
    return fields


def _validate_material_fields(fields: dict[str, Any]) -> dict[str, Any]:
    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("Title is required")
    if "url" in fields and not (fields["url"] or "").strip():
        raise ValidationError("URL is required")
    if "type" in fields and fields["type"] not in MATERIAL_TYPES:
        raise ValidationError("Type must be one of: " + ", ".join(MATERIAL_TYPES))
    return fields


class CourseService:
    def __init__(self, courses: CourseRepo, enrollments: EnrollmentRepo) -> None:
        self._courses = courses
        self._enrollments = enrollments

    async def _get(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course

    def _require_manager(self, principal: Principal, course: Course) -> None:
        if not access_policy.bypasses_enrollment(principal, course):
            logger.warning(
                "Access denied: user=%s is not instructor of course=%s",
                principal.user_id,
                course.id,
            )
            raise AuthorizationError("Not authorized to manage this course")

    # --- catalog ---

    async def list_courses(
        self,
        principal: Principal | None,
        *,
        category: str | None = None,
        level: str | None = None,
        instructor_id: UUID | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Course], int]:
        return await self._courses.list_courses(
            published_only=not (principal is not None and principal.is_admin()),
            category=category,
            level=level,
            instructor_id=instructor_id,
            search=search,
            offset=offset,
            limit=limit,
        )

    async def get_course(self, principal: Principal | None, course_id: UUID) -> Course:
        course = await self._get(course_id)
        if not course.is_published and (
            principal is None or not access_policy.bypasses_enrollment(principal, course)
        ):
            raise AuthorizationError("This course is not available")
        return course

    async def create_course(self, principal: Principal, **fields: Any) -> Course:
        fields = _validate_course_fields(fields)
        if not (fields.get("description") or "").strip():
            raise ValidationError("Description is required")
        fields.pop("status", None)
        fields.pop("modules", None)
        course = Course.new(instructor_id=principal.uid, **fields)
        await self._courses.add(course)
        logger.info("Course created  course=%s by=%s", course.id, principal.user_id)
        return course

    async def update_course(
        self, principal: Principal, course_id: UUID, **fields: Any
    ) -> Course:
        course = await self._get(course_id)
        self._require_manager(principal, course)
        changes = _validate_course_fields({k: v for k, v in fields.items() if v is not None})
        updated = await self._courses.update(course_id, **changes)
        if updated is None:
            raise NotFoundError("Course not found")
        return updated

    async def publish(self, principal: Principal, course_id: UUID) -> Course:
        course = await self._get(course_id)
        self._require_manager(principal, course)
        updated = await self._courses.update(course_id, status="published")
        if updated is None:
            raise NotFoundError("Course not found")
        logger.info("Course published  course=%s by=%s", course_id, principal.user_id)
        return updated

    async def delete_course(self, course_id: UUID) -> None:
        await self._get(course_id)
        removed = await self._enrollments.delete_for_course(course_id)
        await self._courses.delete(course_id)
        logger.info("Course deleted  course=%s enrollments_removed=%d", course_id, removed)

    async def course_enrollments(
        self, principal: Principal, course_id: UUID
    ) -> list[Enrollment]:
        course = await self._get(course_id)
        self._require_manager(principal, course)
        enrollments, _ = await self._enrollments.list_enrollments(
            course_id=course_id, limit=10_000
        )
        return enrollments

    # --- materials ---

    async def list_materials(
        self, principal: Principal, course_id: UUID, now: datetime | None = None
    ) -> tuple[list[Material], bool]:
        """All materials when the caller has access, otherwise previews only.

        The bool says which one the caller got.
        """
        now = now or datetime.now(UTC)
        course = await self._get(course_id)
        enrollment = await self._enrollments.get_for(principal.uid, course_id)
        materials = await self._courses.list_materials(course_id)
        if access_policy.can_view_content(principal, course, enrollment, now):
            return materials, True
        return [m for m in materials if m.is_preview], False

    async def add_material(
        self, principal: Principal, course_id: UUID, **fields: Any
    ) -> Material:
        course = await self._get(course_id)
        self._require_manager(principal, course)
        fields = _validate_material_fields(fields)
        if "title" not in fields or "url" not in fields:
            raise ValidationError("Title and URL are required")
        material = Material.new(course_id=course_id, uploaded_by=principal.uid, **fields)
        await self._courses.add_material(material)
        logger.info("Material added  material=%s course=%s", material.id, course_id)
        return material

    async def _material(self, material_id: UUID) -> tuple[Material, Course]:
        material = await self._courses.get_material(material_id)
        if material is None:
            raise NotFoundError("Material not found")
        return material, await self._get(material.course_id)

    async def get_material(
        self, principal: Principal, material_id: UUID, now: datetime | None = None
    ) -> Material:
        now = now or datetime.now(UTC)
        material, course = await self._material(material_id)
        enrollment = await self._enrollments.get_for(principal.uid, course.id)
        if not access_policy.can_view_material(principal, course, material, enrollment, now):
            raise AuthorizationError("Access to this course has not been granted")
        return material

    async def update_material(
        self, principal: Principal, material_id: UUID, **fields: Any
    ) -> Material:
        _, course = await self._material(material_id)
        self._require_manager(principal, course)
        changes = _validate_material_fields({k: v for k, v in fields.items() if v is not None})
        updated = await self._courses.update_material(material_id, **changes)
        if updated is None:
            raise NotFoundError("Material not found")
        return updated

    async def delete_material(self, principal: Principal, material_id: UUID) -> None:
        _, course = await self._material(material_id)
        self._require_manager(principal, course)
        await self._courses.delete_material(material_id)
