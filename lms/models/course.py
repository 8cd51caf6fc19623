from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID, uuid4

COURSE_STATUSES = ("draft", "published", "archived")
COURSE_CATEGORIES = ("Programming", "Design", "Business", "Marketing", "Other")
COURSE_LEVELS = ("Beginner", "Intermediate", "Advanced")
MATERIAL_TYPES = ("video", "pdf", "link", "other")


@dataclass(frozen=True, slots=True)
class CourseModule:
    """A titled section of a course holding an ordered list of materials."""

    title: str
    order: int = 0
    description: str | None = None
    material_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    title: str
    instructor_id: UUID
    description: str = ""
    price: float = 0.0
    currency: str = "USD"
    category: str = "Other"
    tags: tuple[str, ...] = ()
    level: str = "Beginner"
    status: str = "draft"  # draft|published|archived
    thumbnail_url: str | None = None
    duration_hours: float = 0.0
    modules: tuple[CourseModule, ...] = ()
    enrollment_count: int = 0
    rating_average: float = 0.0
    rating_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        title: str,
        instructor_id: UUID,
        description: str = "",
        price: float = 0.0,
        currency: str = "USD",
        category: str = "Other",
        tags: tuple[str, ...] = (),
        level: str = "Beginner",
        thumbnail_url: str | None = None,
        duration_hours: float = 0.0,
    ) -> Course:
        now = datetime.now(UTC)
        return Course(
            id=uuid4(),
            title=title,
            instructor_id=instructor_id,
            description=description,
            price=price,
            currency=currency,
            category=category,
            tags=tags,
            level=level,
            thumbnail_url=thumbnail_url,
            duration_hours=duration_hours,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    @property
    def is_free(self) -> bool:
        return self.price == 0


@dataclass(frozen=True, slots=True)
class Material:
    """A piece of course content: a video, a PDF, or a link."""

    id: UUID
    course_id: UUID
    title: str
    url: str
    type: str = "other"  # video|pdf|link|other
    mime_type: str | None = None
    duration_seconds: int = 0
    order: int = 0
    is_preview: bool = False
    uploaded_by: UUID | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @staticmethod
    def new(
        *,
        course_id: UUID,
        title: str,
        url: str,
        type: str = "other",
        mime_type: str | None = None,
        duration_seconds: int = 0,
        order: int = 0,
        is_preview: bool = False,
        uploaded_by: UUID | None = None,
    ) -> Material:
        return Material(
            id=uuid4(),
            course_id=course_id,
            title=title,
            url=url,
            type=type,
            mime_type=mime_type,
            duration_seconds=duration_seconds,
            order=order,
            is_preview=is_preview,
            uploaded_by=uploaded_by,
            created_at=datetime.now(UTC),
        )
