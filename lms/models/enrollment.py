from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

from lms.models.payment import PENDING


@dataclass(frozen=True, slots=True)
class Progress:
    completed_material_ids: tuple[UUID, ...] = ()
    percentage: int = 0
    last_accessed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A student's relationship to a course.

    At most one exists per (student_id, course_id).  payment_status mirrors
    the payment that unlocked it, or "completed" for a manual/free grant.
    """

    id: UUID
    student_id: UUID
    course_id: UUID
    payment_status: str = PENDING
    payment_id: UUID | None = None
    access_granted: bool = False
    enrolled_at: datetime | None = None
    expiry_date: datetime | None = None  # None = lifetime access
    progress: Progress = Progress()

    @staticmethod
    def new(
        *,
        student_id: UUID,
        course_id: UUID,
        payment_status: str = PENDING,
        access_granted: bool = False,
        payment_id: UUID | None = None,
        expiry_date: datetime | None = None,
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            payment_status=payment_status,
            payment_id=payment_id,
            access_granted=access_granted,
            enrolled_at=datetime.now(UTC),
            expiry_date=expiry_date,
        )
