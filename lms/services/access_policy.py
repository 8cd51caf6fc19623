"""Who may see course content.

``has_access`` is the single decision function for students.  It is pure:
no I/O, the clock is passed in.  Everything that gates content (material
listing, material fetch, progress updates, check-access) goes through
``can_view_content``, which adds the two bypasses:

  - admins see everything
  - the course's instructor of record sees their own course

Preview materials are visible to any authenticated caller.
"""

from __future__ import annotations

from datetime import UTC, datetime

from lms.models.course import Course, Material
from lms.models.enrollment import Enrollment
from lms.models.payment import COMPLETED
from lms.models.principal import Principal


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def has_access(enrollment: Enrollment | None, now: datetime) -> bool:
    if enrollment is None:
        return False
    # a stale access_granted=True never outranks the payment status
    if enrollment.payment_status != COMPLETED:
        return False
    if not enrollment.access_granted:
        return False
    if enrollment.expiry_date is not None and _aware(enrollment.expiry_date) < _aware(now):
        return False
    return True


def bypasses_enrollment(principal: Principal, course: Course) -> bool:
    return principal.is_admin() or principal.owns(str(course.instructor_id))


def can_view_content(
    principal: Principal,
    course: Course,
    enrollment: Enrollment | None,
    now: datetime,
) -> bool:
    return bypasses_enrollment(principal, course) or has_access(enrollment, now)


def can_view_material(
    principal: Principal,
    course: Course,
    material: Material,
    enrollment: Enrollment | None,
    now: datetime,
) -> bool:
    if material.is_preview:
        return True
    return can_view_content(principal, course, enrollment, now)
