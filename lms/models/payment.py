from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

PENDING = "pending"
UNDER_REVIEW = "under_review"
COMPLETED = "completed"
FAILED = "failed"
REFUNDED = "refunded"

PAYMENT_STATUSES = (PENDING, UNDER_REVIEW, COMPLETED, FAILED, REFUNDED)

# Lifecycle: pending -> {completed, failed, under_review}
#            under_review -> {completed, failed}
#            completed -> refunded
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({COMPLETED, FAILED, UNDER_REVIEW}),
    UNDER_REVIEW: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset({REFUNDED}),
    FAILED: frozenset(),
    REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset({FAILED, REFUNDED})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True, slots=True)
class Payment:
    """One payment attempt.  Never deleted; corrections go through refund."""

    id: UUID
    user_id: UUID
    amount: float
    currency: str
    method: str  # canonical method, see services.payment_gateway
    provider: str
    reference: str
    course_id: UUID | None = None  # None for a course-less subscription payment
    status: str = PENDING
    transaction_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_webhook: dict[str, Any] | None = None
    paid_at: datetime | None = None
    refunded_at: datetime | None = None
    refund_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @staticmethod
    def new(
        *,
        user_id: UUID,
        amount: float,
        currency: str,
        method: str,
        provider: str,
        reference: str,
        course_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Payment:
        now = datetime.now(UTC)
        return Payment(
            id=uuid4(),
            user_id=user_id,
            amount=amount,
            currency=currency,
            method=method,
            provider=provider,
            reference=reference,
            course_id=course_id,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
