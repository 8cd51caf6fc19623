"""PostgreSQL implementation of CourseRepo (courses + materials)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update

from lms.db.engine import SessionFactory, session_scope
from lms.db.tables import CourseRow, MaterialRow
from lms.models.course import Course, CourseModule, Material
from lms.repos.course_repo import COURSE_UPDATE_FIELDS, MATERIAL_UPDATE_FIELDS


class PgCourseRepo:
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def add(self, course: Course) -> None:
        now = datetime.now(UTC)
        row = CourseRow(
            id=course.id,
            title=course.title,
            description=course.description,
            instructor_id=course.instructor_id,
            price=course.price,
            currency=course.currency,
            category=course.category,
            tags=list(course.tags),
            level=course.level,
            status=course.status,
            thumbnail_url=course.thumbnail_url,
            duration_hours=course.duration_hours,
            modules=_modules_to_json(course.modules),
            enrollment_count=course.enrollment_count,
            created_at=course.created_at or now,
            updated_at=course.updated_at or now,
        )
        async with session_scope(self._sessions) as session:
            session.add(row)
            await session.flush()

    async def get(self, course_id: UUID) -> Course | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(CourseRow, course_id)
            return _row_to_course(row) if row is not None else None

    async def update(self, course_id: UUID, **fields: Any) -> Course | None:
        values = {k: v for k, v in fields.items() if k in COURSE_UPDATE_FIELDS}
        if "tags" in values:
            values["tags"] = list(values["tags"])
        if "modules" in values:
            values["modules"] = _modules_to_json(values["modules"])
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(**values, updated_at=datetime.now(UTC))
            .returning(CourseRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_course(row) if row is not None else None

    async def delete(self, course_id: UUID) -> bool:
        # materials and enrollments go with it (ON DELETE CASCADE)
        stmt = delete(CourseRow).where(CourseRow.id == course_id)
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

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
        conditions = []
        if published_only:
            conditions.append(CourseRow.status == "published")
        if category is not None:
            conditions.append(CourseRow.category == category)
        if level is not None:
            conditions.append(CourseRow.level == level)
        if instructor_id is not None:
            conditions.append(CourseRow.instructor_id == instructor_id)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(CourseRow.title.ilike(pattern), CourseRow.description.ilike(pattern))
            )

        page = (
            select(CourseRow)
            .where(*conditions)
            .order_by(CourseRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = select(func.count()).select_from(CourseRow).where(*conditions)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(page)).scalars().all()
            count = (await session.execute(total)).scalar_one()
        return [_row_to_course(r) for r in rows], count

    async def increment_enrollment_count(self, course_id: UUID, delta: int = 1) -> None:
        # Relative update: concurrent completions each add exactly their delta.
        stmt = (
            update(CourseRow)
            .where(CourseRow.id == course_id)
            .values(
                enrollment_count=func.greatest(CourseRow.enrollment_count + delta, 0)
            )
        )
        async with session_scope(self._sessions) as session:
            await session.execute(stmt)

    async def top_courses(self, limit: int = 5) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.enrollment_count.desc()).limit(limit)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_course(r) for r in rows]

    async def count(self, *, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(CourseRow)
        if status is not None:
            stmt = stmt.where(CourseRow.status == status)
        async with session_scope(self._sessions) as session:
            return (await session.execute(stmt)).scalar_one()

    # --- materials ---

    async def add_material(self, material: Material) -> None:
        row = MaterialRow(
            id=material.id,
            course_id=material.course_id,
            title=material.title,
            url=material.url,
            type=material.type,
            mime_type=material.mime_type,
            duration_seconds=material.duration_seconds,
            order=material.order,
            is_preview=material.is_preview,
            uploaded_by=material.uploaded_by,
            created_at=material.created_at or datetime.now(UTC),
        )
        async with session_scope(self._sessions) as session:
            session.add(row)
            await session.flush()

    async def get_material(self, material_id: UUID) -> Material | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(MaterialRow, material_id)
            return _row_to_material(row) if row is not None else None

    async def update_material(self, material_id: UUID, **fields: Any) -> Material | None:
        values = {k: v for k, v in fields.items() if k in MATERIAL_UPDATE_FIELDS}
        if not values:
            return await self.get_material(material_id)
        stmt = (
            update(MaterialRow)
            .where(MaterialRow.id == material_id)
            .values(**values)
            .returning(MaterialRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_material(row) if row is not None else None

    async def delete_material(self, material_id: UUID) -> bool:
        stmt = delete(MaterialRow).where(MaterialRow.id == material_id)
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount > 0

    async def list_materials(self, course_id: UUID) -> list[Material]:
        stmt = (
            select(MaterialRow)
            .where(MaterialRow.course_id == course_id)
            .order_by(MaterialRow.order)
        )
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_material(r) for r in rows]


def _modules_to_json(modules: tuple[CourseModule, ...]) -> list[dict[str, Any]]:
    return [
        {
            "title": m.title,
            "order": m.order,
            "description": m.description,
            "material_ids": [str(mid) for mid in m.material_ids],
        }
        for m in modules
    ]


def _row_to_course(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        instructor_id=row.instructor_id,
        description=row.description or "",
        price=float(row.price),
        currency=row.currency,
        category=row.category,
        tags=tuple(row.tags or ()),
        level=row.level,
        status=row.status,
        thumbnail_url=row.thumbnail_url,
        duration_hours=row.duration_hours,
        modules=tuple(
            CourseModule(
                title=m["title"],
                order=m.get("order", 0),
                description=m.get("description"),
                material_ids=tuple(UUID(mid) for mid in m.get("material_ids", [])),
            )
            for m in row.modules or []
        ),
        enrollment_count=row.enrollment_count,
        rating_average=row.rating_average,
        rating_count=row.rating_count,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_material(row: MaterialRow) -> Material:
    return Material(
        id=row.id,
        course_id=row.course_id,
        title=row.title,
        url=row.url,
        type=row.type,
        mime_type=row.mime_type,
        duration_seconds=row.duration_seconds or 0,
        order=row.order,
        is_preview=row.is_preview,
        uploaded_by=row.uploaded_by,
        created_at=row.created_at,
    )
