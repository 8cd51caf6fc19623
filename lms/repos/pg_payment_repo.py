"""PostgreSQL implementation of PaymentRepo."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update

from lms.db.engine import SessionFactory, session_scope
from lms.db.tables import PaymentRow
from lms.models.payment import COMPLETED, Payment
from lms.repos.payment_repo import TRANSITION_FIELDS


class PgPaymentRepo:
    def __init__(self, sessions: SessionFactory) -> None:
        self._sessions = sessions

    async def add(self, payment: Payment) -> None:
        now = datetime.now(UTC)
        row = PaymentRow(
            id=payment.id,
            user_id=payment.user_id,
            course_id=payment.course_id,
            amount=payment.amount,
            currency=payment.currency,
            method=payment.method,
            provider=payment.provider,
            reference=payment.reference,
            status=payment.status,
            transaction_id=payment.transaction_id,
            metadata_json=dict(payment.metadata),
            created_at=payment.created_at or now,
            updated_at=payment.updated_at or now,
        )
        async with session_scope(self._sessions) as session:
            session.add(row)
            await session.flush()

    async def get(self, payment_id: UUID) -> Payment | None:
        async with session_scope(self._sessions) as session:
            row = await session.get(PaymentRow, payment_id)
            return _row_to_payment(row) if row is not None else None

    async def get_by_reference(self, reference: str) -> Payment | None:
        stmt = select(PaymentRow).where(PaymentRow.reference == reference)
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_payment(row) if row is not None else None

    async def transition(
        self, payment_id: UUID, expected: str, new_status: str, **fields: Any
    ) -> Payment | None:
        values = {k: v for k, v in fields.items() if k in TRANSITION_FIELDS}
        if "metadata" in values:
            values["metadata_json"] = values.pop("metadata")
        # WHERE status = :expected makes the first writer win; a replayed
        # or racing webhook matches zero rows.
        stmt = (
            update(PaymentRow)
            .where(PaymentRow.id == payment_id, PaymentRow.status == expected)
            .values(status=new_status, updated_at=datetime.now(UTC), **values)
            .returning(PaymentRow)
        )
        async with session_scope(self._sessions) as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_payment(row) if row is not None else None

    async def list_payments(
        self,
        *,
        user_id: UUID | None = None,
        status: str | None = None,
        method: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payment], int]:
        conditions = []
        if user_id is not None:
            conditions.append(PaymentRow.user_id == user_id)
        if status is not None:
            conditions.append(PaymentRow.status == status)
        if method is not None:
            conditions.append(PaymentRow.method == method)

        page = (
            select(PaymentRow)
            .where(*conditions)
            .order_by(PaymentRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = select(func.count()).select_from(PaymentRow).where(*conditions)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(page)).scalars().all()
            count = (await session.execute(total)).scalar_one()
        return [_row_to_payment(r) for r in rows], count

    async def completed_since(self, since: datetime | None = None) -> list[Payment]:
        stmt = select(PaymentRow).where(PaymentRow.status == COMPLETED)
        if since is not None:
            stmt = stmt.where(PaymentRow.paid_at >= since)
        async with session_scope(self._sessions) as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_row_to_payment(r) for r in rows]


def _row_to_payment(row: PaymentRow) -> Payment:
    return Payment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        amount=float(row.amount),
        currency=row.currency,
        method=row.method,
        provider=row.provider,
        reference=row.reference,
        status=row.status,
        transaction_id=row.transaction_id,
        metadata=dict(row.metadata_json or {}),
        raw_webhook=row.raw_webhook,
        paid_at=row.paid_at,
        refunded_at=row.refunded_at,
        refund_reason=row.refund_reason,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
