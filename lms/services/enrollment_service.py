"""Enrollment side of the enrollment/payment state machine.

An enrollment moves with the payment that unlocks it:

    (none) --enroll--> pending --payment completed--> completed + access
                          |                              |
                          +--payment failed--> failed    +--refund--> refunded, no access

plus two shortcuts that skip payments entirely: free courses are granted
on enrollment, and an admin can enroll a student manually.

The course's enrollment_count counts enrollments that reached
"completed".  It is bumped in exactly one place, ``_count_grant``, and
only by the caller that actually moved the enrollment into completed,
so a replayed webhook or a second admin click never counts twice.
A refund leaves the counter alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from lms.core.errors import (
    AlreadyEnrolled,
    AuthorizationError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
    ValidationError,
)
from lms.core.metrics import ENROLLMENT_GRANTS
from lms.models.course import Course
from lms.models.enrollment import Enrollment, Progress
from lms.models.payment import COMPLETED, PENDING, REFUNDED, Payment
from lms.models.principal import Principal
from lms.repos.course_repo import CourseRepo
from lms.repos.enrollment_repo import EnrollmentRepo
from lms.repos.user_repo import UserRepo
from lms.services import access_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccessCheck:
    course_id: UUID
    has_access: bool
    enrolled: bool
    enrollment: Enrollment | None = None


class EnrollmentService:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        courses: CourseRepo,
        users: UserRepo,
    ) -> None:
        self._enrollments = enrollments
        self._courses = courses
        self._users = users

    async def _course(self, course_id: UUID) -> Course:
        course = await self._courses.get(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course

    async def _count_grant(self, course_id: UUID, source: str) -> None:
        await self._courses.increment_enrollment_count(course_id, 1)
        ENROLLMENT_GRANTS.labels(source=source).inc()

    # --- student-facing ---

    async def enroll(self, student_id: UUID, course_id: UUID) -> Enrollment:
        course = await self._course(course_id)
        if not course.is_published:
            raise NotFoundError("Course not found")

        if await self._enrollments.get_for(student_id, course_id) is not None:
            raise AlreadyEnrolled("Already enrolled in this course")

        free = course.is_free
        enrollment = Enrollment.new(
            student_id=student_id,
            course_id=course_id,
            payment_status=COMPLETED if free else PENDING,
            access_granted=free,
        )
        try:
            await self._enrollments.add(enrollment)
        except DuplicateKeyError:
            raise AlreadyEnrolled("Already enrolled in this course") from None

        if free:
            await self._count_grant(course_id, "free")
        logger.info(
            "Enrollment created  student=%s course=%s status=%s",
            student_id,
            course_id,
            enrollment.payment_status,
        )
        return enrollment

    async def get(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError("Enrollment not found")
        return enrollment

    async def my_courses(
        self, student_id: UUID, *, payment_status: str | None = None
    ) -> list[tuple[Enrollment, Course | None]]:
        enrollments, _ = await self._enrollments.list_enrollments(
            student_id=student_id, payment_status=payment_status, limit=1000
        )
        return [(e, await self._courses.get(e.course_id)) for e in enrollments]

    async def check_access(
        self, principal: Principal, course_id: UUID, now: datetime | None = None
    ) -> AccessCheck:
        now = now or datetime.now(UTC)
        course = await self._course(course_id)
        enrollment = await self._enrollments.get_for(principal.uid, course_id)
        return AccessCheck(
            course_id=course_id,
            has_access=access_policy.can_view_content(principal, course, enrollment, now),
            enrolled=enrollment is not None,
            enrollment=enrollment,
        )

    async def update_progress(
        self,
        principal: Principal,
        enrollment_id: UUID,
        *,
        material_id: UUID | None = None,
        percentage: int | None = None,
        now: datetime | None = None,
    ) -> Enrollment:
        now = now or datetime.now(UTC)
        enrollment = await self.get(enrollment_id)
        if not principal.owns(enrollment.student_id):
            raise AuthorizationError("You can only update your own progress")
        if not access_policy.has_access(enrollment, now):
            raise AuthorizationError("Access to this course has not been granted")

        completed = enrollment.progress.completed_material_ids
        if material_id is not None:
            material = await self._courses.get_material(material_id)
            if material is None or material.course_id != enrollment.course_id:
                raise ValidationError("Material does not belong to this course")
            if material_id not in completed:
                completed = (*completed, material_id)

        if percentage is not None:
            pct = min(100, max(0, int(percentage)))
        elif material_id is not None:
            total = len(await self._courses.list_materials(enrollment.course_id))
            pct = min(100, round(100 * len(completed) / total)) if total else 0
        else:
            pct = enrollment.progress.percentage

        progress = Progress(
            completed_material_ids=completed, percentage=pct, last_accessed_at=now
        )
        updated = await self._enrollments.update(enrollment_id, progress=progress)
        if updated is None:
            raise NotFoundError("Enrollment not found")
        return updated

    # --- payment-driven transitions ---

    async def ensure_pending(self, student_id: UUID, course_id: UUID) -> Enrollment:
        """Enrollment to attach a new course payment to.

        Raises AlreadyEnrolled when the pair is already paid up.
        """
        existing = await self._enrollments.get_for(student_id, course_id)
        if existing is not None:
            if existing.payment_status == COMPLETED:
                raise AlreadyEnrolled("Already enrolled in this course")
            return existing

        enrollment = Enrollment.new(student_id=student_id, course_id=course_id)
        try:
            await self._enrollments.add(enrollment)
        except DuplicateKeyError:
            existing = await self._enrollments.get_for(student_id, course_id)
            if existing is None:
                raise
            if existing.payment_status == COMPLETED:
                raise AlreadyEnrolled("Already enrolled in this course") from None
            return existing
        return enrollment

    async def attach_payment(self, enrollment_id: UUID, payment_id: UUID) -> None:
        await self._enrollments.update(
            enrollment_id, payment_id=payment_id, payment_status=PENDING
        )

    async def complete_from_payment(self, payment: Payment) -> Enrollment:
        """Upsert the enrollment for a completed course payment.

        Creating it, or moving it into completed, counts once.  An
        enrollment that was already completed only has access restored.
        """
        assert payment.course_id is not None
        student_id, course_id = payment.user_id, payment.course_id

        existing = await self._enrollments.get_for(student_id, course_id)
        if existing is None:
            fresh = Enrollment.new(
                student_id=student_id,
                course_id=course_id,
                payment_status=COMPLETED,
                access_granted=True,
                payment_id=payment.id,
            )
            try:
                await self._enrollments.add(fresh)
            except DuplicateKeyError:
                existing = await self._enrollments.get_for(student_id, course_id)
                if existing is None:
                    raise
            else:
                await self._count_grant(course_id, "payment")
                return fresh

        moved = await self._enrollments.mark_completed(existing.id, payment_id=payment.id)
        if moved is not None:
            await self._count_grant(course_id, "payment")
            return moved

        restored = await self._enrollments.update(
            existing.id,
            access_granted=True,
            payment_id=existing.payment_id or payment.id,
        )
        return restored or existing

    async def reconcile_completed(self, payment: Payment) -> bool:
        """Finish a completed course payment whose enrollment never caught up.

        Returns True when something was written.  An enrollment that is
        already completed is left alone, including its access flag.
        """
        assert payment.course_id is not None
        e = await self._enrollments.get_for(payment.user_id, payment.course_id)
        if e is not None and e.payment_status == COMPLETED:
            return False
        logger.warning(
            "Repairing enrollment for completed payment  student=%s course=%s payment=%s",
            payment.user_id,
            payment.course_id,
            payment.id,
        )
        await self.complete_from_payment(payment)
        return True

    async def get_for_payment(self, payment: Payment) -> Enrollment | None:
        """The enrollment this payment unlocked, if it still points at it."""
        if payment.course_id is None:
            return None
        e = await self._enrollments.get_for(payment.user_id, payment.course_id)
        if e is None or e.payment_id != payment.id:
            return None
        return e

    async def repoint_payment(self, refunded: Payment, survivor: Payment) -> None:
        """Move an enrollment off a refunded payment onto one still completed."""
        e = await self.get_for_payment(refunded)
        if e is not None:
            await self._enrollments.update(e.id, payment_id=survivor.id)

    async def mirror_payment_status(self, payment: Payment) -> None:
        """Copy a non-completing payment status (failed, under_review) onto
        the enrollment, unless that enrollment is already completed."""
        if payment.course_id is None:
            return
        e = await self._enrollments.get_for(payment.user_id, payment.course_id)
        if e is None or e.payment_status == COMPLETED:
            return
        if e.payment_id is not None and e.payment_id != payment.id:
            return  # a newer payment owns this enrollment
        await self._enrollments.update(e.id, payment_status=payment.status)

    async def revoke_for_refund(self, payment: Payment) -> Enrollment | None:
        if payment.course_id is None:
            return None
        e = await self._enrollments.get_for(payment.user_id, payment.course_id)
        if e is None:
            return None
        logger.info(
            "Access revoked by refund  student=%s course=%s payment=%s",
            payment.user_id,
            payment.course_id,
            payment.id,
        )
        return await self._enrollments.update(
            e.id, access_granted=False, payment_status=REFUNDED
        )

    # --- admin ---

    async def manual_enroll(
        self,
        student_id: UUID,
        course_id: UUID,
        *,
        grant_access: bool = True,
        expiry_date: datetime | None = None,
    ) -> Enrollment:
        if await self._users.get_by_id(student_id) is None:
            raise NotFoundError("Student not found")
        await self._course(course_id)
        if await self._enrollments.get_for(student_id, course_id) is not None:
            raise ConflictError("Student already enrolled in this course")

        enrollment = Enrollment.new(
            student_id=student_id,
            course_id=course_id,
            payment_status=COMPLETED if grant_access else PENDING,
            access_granted=grant_access,
            expiry_date=expiry_date,
        )
        try:
            await self._enrollments.add(enrollment)
        except DuplicateKeyError:
            raise ConflictError("Student already enrolled in this course") from None

        if grant_access:
            await self._count_grant(course_id, "manual")
        logger.info(
            "Manual enrollment  student=%s course=%s granted=%s",
            student_id,
            course_id,
            grant_access,
        )
        return enrollment

    async def set_access(
        self,
        enrollment_id: UUID,
        *,
        grant: bool,
        expiry_date: datetime | None = None,
        clear_expiry: bool = False,
    ) -> Enrollment:
        """Admin grant/revoke on an existing enrollment.

        Granting a not-yet-completed enrollment completes it (and counts).
        """
        enrollment = await self.get(enrollment_id)
        changes: dict[str, object] = {"access_granted": grant}
        if expiry_date is not None or clear_expiry:
            changes["expiry_date"] = expiry_date

        if grant and enrollment.payment_status != COMPLETED:
            moved = await self._enrollments.mark_completed(enrollment_id)
            if moved is not None:
                await self._count_grant(enrollment.course_id, "manual")

        updated = await self._enrollments.update(enrollment_id, **changes)
        if updated is None:
            raise NotFoundError("Enrollment not found")
        logger.info(
            "Enrollment access %s  enrollment=%s",
            "granted" if grant else "revoked",
            enrollment_id,
        )
        return updated

    async def list_all(
        self,
        *,
        payment_status: str | None = None,
        course_id: UUID | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Enrollment], int]:
        return await self._enrollments.list_enrollments(
            payment_status=payment_status, course_id=course_id, offset=offset, limit=limit
        )

    async def list_for_course(self, course_id: UUID) -> list[Enrollment]:
        enrollments, _ = await self._enrollments.list_enrollments(
            course_id=course_id, limit=10_000
        )
        return enrollments
