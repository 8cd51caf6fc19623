from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from lms.core.errors import DuplicateKeyError
from lms.models.enrollment import Enrollment
from lms.models.payment import COMPLETED

ENROLLMENT_UPDATE_FIELDS = frozenset(
    {"payment_status", "payment_id", "access_granted", "expiry_date", "progress"}
)


class EnrollmentRepo(Protocol):
    async def add(self, enrollment: Enrollment) -> None:
        """Raises DuplicateKeyError if (student_id, course_id) already exists."""
        ...

    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def mark_completed(
        self, enrollment_id: UUID, *, payment_id: UUID | None = None
    ) -> Enrollment | None:
        """Set payment_status=completed and access_granted=True.

        Only applies when payment_status is not already completed; returns
        None otherwise, so the caller knows the enrollment did not newly
        complete.
        """
        ...

    async def update(self, enrollment_id: UUID, **fields: Any) -> Enrollment | None: ...
    async def list_enrollments(
        self,
        *,
        student_id: UUID | None = None,
        course_id: UUID | None = None,
        payment_status: str | None = None,
        access_granted: bool | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Enrollment], int]: ...
    async def count(self, *, payment_status: str | None = None) -> int: ...
    async def delete_for_course(self, course_id: UUID) -> int: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}

    async def add(self, enrollment: Enrollment) -> None:
        if await self.get_for(enrollment.student_id, enrollment.course_id) is not None:
            raise DuplicateKeyError("enrollment already exists for student and course")
        self._by_id[enrollment.id] = enrollment

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        for e in self._by_id.values():
            if e.student_id == student_id and e.course_id == course_id:
                return e
        return None

    async def mark_completed(
        self, enrollment_id: UUID, *, payment_id: UUID | None = None
    ) -> Enrollment | None:
        e = self._by_id.get(enrollment_id)
        if e is None or e.payment_status == COMPLETED:
            return None
        updated = replace(
            e,
            payment_status=COMPLETED,
            access_granted=True,
            payment_id=payment_id if payment_id is not None else e.payment_id,
        )
        self._by_id[enrollment_id] = updated
        return updated

    async def update(self, enrollment_id: UUID, **fields: Any) -> Enrollment | None:
        e = self._by_id.get(enrollment_id)
        if e is None:
            return None
        changes = {k: v for k, v in fields.items() if k in ENROLLMENT_UPDATE_FIELDS}
        updated = replace(e, **changes)
        self._by_id[enrollment_id] = updated
        return updated

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
        matches = [
            e
            for e in self._by_id.values()
            if (student_id is None or e.student_id == student_id)
            and (course_id is None or e.course_id == course_id)
            and (payment_status is None or e.payment_status == payment_status)
            and (access_granted is None or e.access_granted == access_granted)
        ]
        matches.sort(key=lambda e: e.enrolled_at or datetime.min.replace(tzinfo=UTC))
        matches.reverse()
        return matches[offset : offset + limit], len(matches)

    async def count(self, *, payment_status: str | None = None) -> int:
        return sum(
            1
            for e in self._by_id.values()
            if payment_status is None or e.payment_status == payment_status
        )

    async def delete_for_course(self, course_id: UUID) -> int:
        doomed = [eid for eid, e in self._by_id.items() if e.course_id == course_id]
        for eid in doomed:
            del self._by_id[eid]
        return len(doomed)
