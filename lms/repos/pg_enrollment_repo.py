"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update

from lms.db.engine import SessionFactory, session_scope
from lms.db.tables import EnrollmentRow
from lms.models.enrollment import Enrollment, Progress
from lms.models.payment import COMPLETED
from lms.repos.enrollment_repo import ENROLLMENT_UPDATE_FIELDS


class PgEnrollmentRepo:
    """Relies on uq_enrollment_student_course for one-enrollment-per-pair."""

    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def add(self, enrollment: Enrollment) -> None:
        row = EnrollmentRow(
            id=enrollment.id,
            student_id=enrollment.student_id,
            course_id=enrollment.course_id,
            payment_status=enrollment.payment_status,
            payment_id=enrollment.payment_id,
            access_granted=enrollment.access_granted,
            enrolled_at=enrollment.enrolled_at or datetime.now(UTC),
            expiry_date=enrollment.expiry_date,
            completed_material_ids=list(enrollment.progress.completed_material_ids),
            progress_percentage=enrollment.progress.percentage,
            last_accessed_at=enrollment.progress.last_accessed_at,
        )
        # session_scope turns the unique violation into DuplicateKeyError
        async with session_scope(self._sessions) as session:
            session.add(row)
            await session.flush()

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(EnrollmentRow, enrollment_id)
            return _row_to_enrollment(row) if row is not None else None

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.student_id == student_id,
            EnrollmentRow.course_id == course_id,
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_enrollment(row) if row is not None else None

    async def mark_completed(
        self, enrollment_id: UUID, *, payment_id: UUID | None = None
    ) -> Enrollment | None:
        values: dict[str, Any] = {"payment_status": COMPLETED, "access_granted": True}
        if payment_id is not None:
            values["payment_id"] = payment_id
        stmt = (
            update(EnrollmentRow)
            .where(
                EnrollmentRow.id == enrollment_id,
                EnrollmentRow.payment_status != COMPLETED,
            )
            .values(**values)
            .returning(EnrollmentRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_enrollment(row) if row is not None else None

    async def update(self, enrollment_id: UUID, **fields: Any) -> Enrollment | None:
        values = {k: v for k, v in fields.items() if k in ENROLLMENT_UPDATE_FIELDS}
        progress = values.pop("progress", None)
        if progress is not None:
            values["completed_material_ids"] = list(progress.completed_material_ids)
            values["progress_percentage"] = progress.percentage
            values["last_accessed_at"] = progress.last_accessed_at
        if not values:
            return await self.get(enrollment_id)
        stmt = (
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(**values)
            .returning(EnrollmentRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_enrollment(row) if row is not None else None

    async def list_enrollments(
        self,
        *,
        student_id: UUID | None = None,
        course_id: UUID | None = None,
        payment_status: str | None = None,
        access_granted: bool | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Enrollment], int]:
        conditions = []
        if student_id is not None:
            conditions.append(EnrollmentRow.student_id == student_id)
        if course_id is not None:
            conditions.append(EnrollmentRow.course_id == course_id)
        if payment_status is not None:
            conditions.append(EnrollmentRow.payment_status == payment_status)
        if access_granted is not None:
            conditions.append(EnrollmentRow.access_granted == access_granted)

        page = (
            select(EnrollmentRow)
            .where(*conditions)
            .order_by(EnrollmentRow.enrolled_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = select(func.count()).select_from(EnrollmentRow).where(*conditions)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(page)).scalars().all()
            count = (await session.execute(total)).scalar_one()
        return [_row_to_enrollment(r) for r in rows], count

    async def count(self, *, payment_status: str | None = None) -> int:
        stmt = select(func.count()).select_from(EnrollmentRow)
        if payment_status is not None:
            stmt = stmt.where(EnrollmentRow.payment_status == payment_status)
        async with session_scope(self._sessions) as session:
            return (await session.execute(stmt)).scalar_one()

    async def delete_for_course(self, course_id: UUID) -> int:
        stmt = delete(EnrollmentRow).where(EnrollmentRow.course_id == course_id)
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            return result.rowcount


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        payment_status=row.payment_status,
        payment_id=row.payment_id,
        access_granted=row.access_granted,
        enrolled_at=row.enrolled_at,
        expiry_date=row.expiry_date,
        progress=Progress(
            completed_material_ids=tuple(row.completed_material_ids or ()),
            percentage=row.progress_percentage,
            last_accessed_at=row.last_accessed_at,
        ),
    )
