from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID

from lms.core.errors import DuplicateKeyError
from lms.models.payment import COMPLETED, Payment

TRANSITION_FIELDS = frozenset(
    {"transaction_id", "raw_webhook", "paid_at", "refunded_at", "refund_reason", "metadata"}
)


class PaymentRepo(Protocol):
    async def add(self, payment: Payment) -> None: ...
    async def get(self, payment_id: UUID) -> Payment | None: ...
    async def get_by_reference(self, reference: str) -> Payment | None: ...
    async def transition(
        self, payment_id: UUID, expected: str, new_status: str, **fields: Any
    ) -> Payment | None:
        """Compare-and-set on status.

        Returns the updated payment, or None when the stored status was no
        longer ``expected`` (someone else moved it first).
        """
        ...

    async def list_payments(
        self,
        *,
        user_id: UUID | None = None,
        status: str | None = None,
        method: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payment], int]: ...
    async def completed_since(self, since: datetime | None = None) -> list[Payment]: ...


class InMemoryPaymentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Payment] = {}

    async def add(self, payment: Payment) -> None:
        if any(p.reference == payment.reference for p in self._by_id.values()):
            raise DuplicateKeyError("payment reference already exists")
        self._by_id[payment.id] = payment

    async def get(self, payment_id: UUID) -> Payment | None:
        return self._by_id.get(payment_id)

    async def get_by_reference(self, reference: str) -> Payment | None:
        for p in self._by_id.values():
            if p.reference == reference:
                return p
        return None

    async def transition(
        self, payment_id: UUID, expected: str, new_status: str, **fields: Any
    ) -> Payment | None:
        p = self._by_id.get(payment_id)
        if p is None or p.status != expected:
            return None
        changes = {k: v for k, v in fields.items() if k in TRANSITION_FIELDS}
        updated = replace(p, status=new_status, updated_at=datetime.now(UTC), **changes)
        self._by_id[payment_id] = updated
        return updated

    async def list_payments(
        self,
        *,
        user_id: UUID | None = None,
        status: str | None = None,
        method: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payment], int]:
        matches = [
            p
            for p in self._by_id.values()
            if (user_id is None or p.user_id == user_id)
            and (status is None or p.status == status)
            and (method is None or p.method == method)
        ]
        matches.sort(key=lambda p: p.created_at or datetime.min.replace(tzinfo=UTC))
        matches.reverse()
        return matches[offset : offset + limit], len(matches)

    async def completed_since(self, since: datetime | None = None) -> list[Payment]:
        return [
            p
            for p in self._by_id.values()
            if p.status == COMPLETED
            and (since is None or (p.paid_at is not None and p.paid_at >= since))
        ]
