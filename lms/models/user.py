from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

ROLE_ADMIN = "admin"
ROLE_TEACHER = "teacher"
ROLE_STUDENT = "student"
ROLES = (ROLE_ADMIN, ROLE_TEACHER, ROLE_STUDENT)


def normalize_role(raw: str | None) -> str | None:
    """Accept 'Admin'/'Teacher'/'Student' as well as the lower-case names.

    'instructor' is the same role as 'teacher'.
    """
    if raw is None:
        return None
    value = raw.strip().lower()
    if value == "instructor":
        value = ROLE_TEACHER
    return value if value in ROLES else None


@dataclass(frozen=True, slots=True)
class User:
    id: UUID
    email: str
    password_hash: str
    name: str = ""
    role: str = ROLE_STUDENT
    is_paid: bool = False  # course-less subscription access
    is_active: bool = True
    bio: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @staticmethod
    def new(
        *,
        email: str,
        password_hash: str,
        name: str = "",
        role: str = ROLE_STUDENT,
    ) -> User:
        return User(
            id=uuid4(),
            email=email.strip().lower(),
            password_hash=password_hash,
            name=name.strip(),
            role=role,
            created_at=datetime.now(UTC),
        )

    @property
    def roles(self) -> tuple[str, ...]:
        return (self.role,)
