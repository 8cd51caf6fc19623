"""Payment side of the enrollment/payment state machine.

    pending ----------------> completed ------> refunded
       |                        ^
       +----> under_review -----+
       |           |
       +----> failed <----------+

Every status change goes through ``_transition``, which

  1. answers "already there" for a re-delivery of the current status
     (returns None, nothing is written),
  2. raises InvalidTransition for anything not on the diagram,
  3. writes with compare-and-set on the stored status, so two racing
     webhooks for the same reference cannot both apply,
  4. runs the side effects (grant or revoke access, flip is_paid) only
     for the caller whose write succeeded.

Webhooks and admin actions share this path.  A webhook that is valid
but cannot be applied (replay, illegal move) is acknowledged with 200;
providers retry on non-2xx and would otherwise loop.

The status write and its side effects are separate transactions.  If a
side effect fails after the write, the webhook answers 500 and the
provider redelivers it.  That redelivery is a replay, and replays
re-apply the side effects idempotently (``_reconcile``): a completed
payment whose enrollment never reached completed gets it now, and is
counted then.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from lms.core.errors import (
    InvalidOperation,
    InvalidSignature,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from lms.core.metrics import PAYMENT_TRANSITIONS, PAYMENTS_INITIATED, WEBHOOK_EVENTS
from lms.models.payment import (
    COMPLETED,
    FAILED,
    REFUNDED,
    Payment,
    can_transition,
)
from lms.repos.course_repo import CourseRepo
from lms.repos.payment_repo import PaymentRepo
from lms.repos.user_repo import UserRepo
from lms.services.enrollment_service import EnrollmentService
from lms.services.payment_gateway import (
    CheckoutSession,
    PaymentGateway,
    map_webhook_status,
    require_method,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InitiatedPayment:
    payment: Payment
    session: CheckoutSession


@dataclass(frozen=True, slots=True)
class WebhookOutcome:
    applied: bool
    payment: Payment
    message: str


class PaymentService:
    def __init__(
        self,
        payments: PaymentRepo,
        courses: CourseRepo,
        users: UserRepo,
        enrollments: EnrollmentService,
        gateway: PaymentGateway,
        *,
        default_currency: str = "USD",
    ) -> None:
        self._payments = payments
        self._courses = courses
        self._users = users
        self._enrollments = enrollments
        self._gateway = gateway
        self._default_currency = default_currency

    # --- initiate ---

    async def initiate(
        self,
        *,
        user_id: UUID,
        course_id: UUID | None = None,
        amount: float | None = None,
        currency: str | None = None,
        method: str | None = None,
        provider: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InitiatedPayment:
        canonical = require_method(method or "visa_card", provider)

        enrollment = None
        if course_id is not None:
            course = await self._courses.get(course_id)
            if course is None or not course.is_published:
                raise NotFoundError("Course not found")
            # the course price is authoritative for course purchases
            amount = course.price
            currency = currency or course.currency

        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        if course_id is not None:
            enrollment = await self._enrollments.ensure_pending(user_id, course_id)
        currency = (currency or self._default_currency).upper()

        meta = dict(metadata or {})
        if course_id is not None:
            meta["courseId"] = str(course_id)
        session = await self._gateway.create_session(
            amount=amount,
            currency=currency,
            method=canonical,
            user_id=str(user_id),
            metadata=meta,
            provider=provider,
        )

        payment = Payment.new(
            user_id=user_id,
            course_id=course_id,
            amount=amount,
            currency=currency,
            method=canonical,
            provider=session.provider,
            reference=session.reference,
            metadata=meta,
        )
        await self._payments.add(payment)
        if enrollment is not None:
            await self._enrollments.attach_payment(enrollment.id, payment.id)

        PAYMENTS_INITIATED.labels(method=canonical, provider=session.provider).inc()
        logger.info(
            "Payment initiated  user=%s ref=%s amount=%.2f %s",
            user_id,
            payment.reference,
            amount,
            currency,
            extra={
                "payment_reference": payment.reference,
                "payment_status": payment.status,
            },
        )
        return InitiatedPayment(payment=payment, session=session)

    # --- transitions ---

    async def _transition(
        self, payment: Payment, target: str, **fields: Any
    ) -> Payment | None:
        if payment.status == target:
            return None
        if not can_transition(payment.status, target):
            raise InvalidTransition(payment.status, target)

        now = datetime.now(UTC)
        if target == COMPLETED:
            fields.setdefault("paid_at", now)
        elif target == REFUNDED:
            fields.setdefault("refunded_at", now)

        updated = await self._payments.transition(
            payment.id, payment.status, target, **fields
        )
        if updated is None:
            # lost the race: someone moved it between our read and write
            return None

        PAYMENT_TRANSITIONS.labels(from_status=payment.status, to_status=target).inc()
        logger.info(
            "Payment %s -> %s  ref=%s",
            payment.status,
            target,
            payment.reference,
            extra={"payment_reference": payment.reference, "payment_status": target},
        )
        await self._apply_side_effects(updated)
        return updated

    async def _apply_side_effects(self, payment: Payment) -> None:
        if payment.status == COMPLETED:
            if payment.course_id is not None:
                await self._enrollments.complete_from_payment(payment)
            else:
                await self._users.set_paid(payment.user_id, True)
        elif payment.status == REFUNDED:
            await self._apply_refund(payment)
        else:
            await self._enrollments.mirror_payment_status(payment)

    async def _other_completed(self, payment: Payment) -> Payment | None:
        """Another completed payment by the same user for the same course
        (or another course-less one), if any."""
        completed, _ = await self._payments.list_payments(
            user_id=payment.user_id, status=COMPLETED, limit=10_000
        )
        for other in completed:
            if other.id != payment.id and other.course_id == payment.course_id:
                return other
        return None

    async def _apply_refund(self, payment: Payment) -> None:
        survivor = await self._other_completed(payment)
        if survivor is not None:
            logger.info(
                "Refund keeps access: payment %s still completed  refunded=%s",
                survivor.reference,
                payment.reference,
                extra={
                    "payment_reference": payment.reference,
                    "payment_status": REFUNDED,
                },
            )
            if payment.course_id is not None:
                await self._enrollments.repoint_payment(payment, survivor)
            return
        if payment.course_id is not None:
            await self._enrollments.revoke_for_refund(payment)
        else:
            await self._users.set_paid(payment.user_id, False)

    async def _reconcile(self, payment: Payment) -> None:
        """Re-apply the side effects of the payment's current status.

        Only state that is missing gets written: an enrollment that is
        already completed keeps whatever access an admin left it with.
        """
        if payment.status == COMPLETED:
            if payment.course_id is not None:
                await self._enrollments.reconcile_completed(payment)
            else:
                user = await self._users.get_by_id(payment.user_id)
                if user is not None and not user.is_paid:
                    await self._users.set_paid(payment.user_id, True)
        elif payment.status == REFUNDED:
            if payment.course_id is not None:
                e = await self._enrollments.get_for_payment(payment)
                if e is None or e.payment_status == REFUNDED:
                    return
            await self._apply_refund(payment)
        else:
            await self._enrollments.mirror_payment_status(payment)

    # --- webhook ---

    async def handle_webhook(
        self, payload: dict[str, Any], signature: str | None
    ) -> WebhookOutcome:
        try:
            self._gateway.verify_signature(payload, signature)
        except InvalidSignature:
            WEBHOOK_EVENTS.labels(result="bad_signature").inc()
            logger.warning("Webhook rejected: bad signature")
            raise

        reference = payload.get("reference")
        if not reference or not payload.get("status"):
            WEBHOOK_EVENTS.labels(result="malformed").inc()
            raise ValidationError("Missing reference or status")
        if not isinstance(reference, str) or not isinstance(payload.get("status"), str):
            WEBHOOK_EVENTS.labels(result="malformed").inc()
            raise ValidationError("Reference and status must be strings")
        try:
            target = map_webhook_status(payload.get("status"))
        except ValidationError:
            WEBHOOK_EVENTS.labels(result="malformed").inc()
            raise

        payment = await self._payments.get_by_reference(reference)
        if payment is None:
            WEBHOOK_EVENTS.labels(result="unknown_reference").inc()
            logger.warning("Webhook for unknown reference=%s", reference)
            raise NotFoundError("Payment not found")

        if payment.status == target:
            WEBHOOK_EVENTS.labels(result="replay").inc()
            await self._reconcile(payment)
            return WebhookOutcome(False, payment, "Already processed")

        fields: dict[str, Any] = {"raw_webhook": payload}
        txn = payload.get("transaction_id") or payload.get("transactionId")
        if txn:
            fields["transaction_id"] = str(txn)

        try:
            updated = await self._transition(payment, target, **fields)
        except InvalidTransition as exc:
            WEBHOOK_EVENTS.labels(result="ignored").inc()
            logger.warning(
                "Webhook ignored: %s  ref=%s",
                exc.message,
                reference,
                extra={"payment_reference": reference, "payment_status": payment.status},
            )
            return WebhookOutcome(False, payment, "Ignored: " + exc.message)

        if updated is None:
            WEBHOOK_EVENTS.labels(result="replay").inc()
            current = await self._payments.get(payment.id) or payment
            if current.status == target:
                await self._reconcile(current)
            return WebhookOutcome(False, current, "Already processed")

        WEBHOOK_EVENTS.labels(result="applied").inc()
        return WebhookOutcome(True, updated, "Webhook processed")

    # --- admin actions ---

    async def get(self, payment_id: UUID) -> Payment:
        payment = await self._payments.get(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    async def approve(
        self, payment_id: UUID, *, transaction_id: str | None = None
    ) -> Payment:
        payment = await self.get(payment_id)
        if payment.status == COMPLETED:
            raise InvalidOperation("Payment already approved")
        fields = {"transaction_id": transaction_id} if transaction_id else {}
        updated = await self._transition(payment, COMPLETED, **fields)
        if updated is None:
            raise InvalidOperation("Payment already approved")
        return updated

    async def reject(self, payment_id: UUID, *, reason: str | None = None) -> Payment:
        payment = await self.get(payment_id)
        if payment.status == FAILED:
            raise InvalidOperation("Payment already rejected")
        meta = {**payment.metadata, "rejectReason": reason} if reason else None
        fields = {"metadata": meta} if meta is not None else {}
        updated = await self._transition(payment, FAILED, **fields)
        if updated is None:
            raise InvalidOperation("Payment already rejected")
        return updated

    async def refund(self, payment_id: UUID, *, reason: str | None = None) -> Payment:
        payment = await self.get(payment_id)
        if payment.status != COMPLETED:
            raise InvalidTransition(payment.status, REFUNDED)
        updated = await self._transition(payment, REFUNDED, refund_reason=reason)
        if updated is None:
            raise InvalidOperation("Payment already refunded")
        return updated

    # --- queries ---

    async def history(self, user_id: UUID) -> list[Payment]:
        payments, _ = await self._payments.list_payments(user_id=user_id, limit=1000)
        return payments

    async def list_all(
        self,
        *,
        status: str | None = None,
        method: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[Payment], int]:
        return await self._payments.list_payments(
            status=status, method=method, offset=offset, limit=limit
        )
