from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from lms.models.course import Course, Material

# Columns a course owner may change; enrollment_count and ratings are
# maintained by the repo itself.
COURSE_UPDATE_FIELDS = frozenset(
    {
        "title",
        "description",
        "price",
        "currency",
        "category",
        "tags",
        "level",
        "status",
        "thumbnail_url",
        "duration_hours",
        "modules",
    }
)
MATERIAL_UPDATE_FIELDS = frozenset(
    {"title", "url", "type", "mime_type", "duration_seconds", "order", "is_preview"}
)


class CourseRepo(Protocol):
    async def add(self, course: Course) -> None: ...
    async def get(self, course_id: UUID) -> Course | None: ...
    async def update(self, course_id: UUID, **fields: Any) -> Course | None: ...
    async def delete(self, course_id: UUID) -> bool: ...
    async def list_courses(
        self,
        *,
        published_only: bool = True,
        category: str | None = None,
        level: str | None = None,
        instructor_id: UUID | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Course], int]: ...
    async def increment_enrollment_count(self, course_id: UUID, delta: int = 1) -> None: ...
    async def top_courses(self, limit: int = 5) -> list[Course]: ...
    async def count(self, *, status: str | None = None) -> int: ...

    async def add_material(self, material: Material) -> None: ...
    async def get_material(self, material_id: UUID) -> Material | None: ...
    async def update_material(self, material_id: UUID, **fields: Any) -> Material | None: ...
    async def delete_material(self, material_id: UUID) -> bool: ...
    async def list_materials(self, course_id: UUID) -> list[Material]: ...


def _matches_search(course: Course, search: str) -> bool:
    needle = search.lower()
    return needle in course.title.lower() or needle in course.description.lower()


class InMemoryCourseRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._materials: dict[UUID, Material] = {}

    async def add(self, course: Course) -> None:
        self._courses[course.id] = course

    async def get(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def update(self, course_id: UUID, **fields: Any) -> Course | None:
        c = self._courses.get(course_id)
        if c is None:
            return None
        changes = {k: v for k, v in fields.items() if k in COURSE_UPDATE_FIELDS}
        updated = replace(c, **changes, updated_at=datetime.now(UTC))
        self._courses[course_id] = updated
        return updated

    async def delete(self, course_id: UUID) -> bool:
        if self._courses.pop(course_id, None) is None:
            return False
        for mid in [m.id for m in self._materials.values() if m.course_id == course_id]:
            del self._materials[mid]
        return True

    async def list_courses(
        self,
        *,
        published_only: bool = True,
        category: str | None = None,
        level: str | None = None,
        instructor_id: UUID | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Course], int]:
        matches = [
            c
            for c in self._courses.values()
            if (not published_only or c.is_published)
            and (category is None or c.category == category)
            and (level is None or c.level == level)
            and (instructor_id is None or c.instructor_id == instructor_id)
            and (not search or _matches_search(c, search))
        ]
        matches.sort(key=lambda c: c.created_at or datetime.min.replace(tzinfo=UTC))
        matches.reverse()
        return matches[offset : offset + limit], len(matches)

    async def increment_enrollment_count(self, course_id: UUID, delta: int = 1) -> None:
        # Single-threaded event loop: read-modify-write cannot interleave here.
        c = self._courses.get(course_id)
        if c is not None:
            self._courses[course_id] = replace(
                c, enrollment_count=max(0, c.enrollment_count + delta)
            )

    async def top_courses(self, limit: int = 5) -> list[Course]:
        ranked = sorted(
            self._courses.values(), key=lambda c: c.enrollment_count, reverse=True
        )
        return ranked[:limit]

    async def count(self, *, status: str | None = None) -> int:
        return sum(
            1 for c in self._courses.values() if status is None or c.status == status
        )

    async def add_material(self, material: Material) -> None:
        self._materials[material.id] = material

    async def get_material(self, material_id: UUID) -> Material | None:
        return self._materials.get(material_id)

    async def update_material(self, material_id: UUID, **fields: Any) -> Material | None:
        m = self._materials.get(material_id)
        if m is None:
            return None
        changes = {k: v for k, v in fields.items() if k in MATERIAL_UPDATE_FIELDS}
        updated = replace(m, **changes)
        self._materials[material_id] = updated
        return updated

    async def delete_material(self, material_id: UUID) -> bool:
        return self._materials.pop(material_id, None) is not None

    async def list_materials(self, course_id: UUID) -> list[Material]:
        found = [m for m in self._materials.values() if m.course_id == course_id]
        return sorted(found, key=lambda m: m.order)
