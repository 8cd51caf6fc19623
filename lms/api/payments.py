"""Payment endpoints.

/payments/webhook is the only unauthenticated write in the service.  It
is authenticated by the HMAC signature instead of a bearer token, and it
always answers 200 once the signature checks out and the reference is
known, even when the event cannot be applied.  See
services/payment_service.py for the state machine behind it.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, Query, Request, status

from lms.api.access import check_owner_or_admin
from lms.api.dependencies import AdminUser, Ctx, CurrentUser, Pagination
from lms.api.schemas import (
    Page,
    PaymentActionIn,
    PaymentInitiatedOut,
    PaymentInitiateIn,
    PaymentOut,
    WebhookOut,
)
from lms.core.errors import ValidationError
from lms.services.payment_gateway import normalize_method

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/initiate",
    response_model=PaymentInitiatedOut,
    status_code=status.HTTP_201_CREATED,
)
async def initiate_payment(
    payload: PaymentInitiateIn, principal: CurrentUser, ctx: Ctx
) -> PaymentInitiatedOut:
    result = await ctx.payment_service.initiate(
        user_id=principal.uid,
        course_id=payload.course_id,
        amount=payload.amount,
        currency=payload.currency,
        method=payload.method,
        provider=payload.provider,
        metadata=payload.metadata,
    )
    p = result.payment
    return PaymentInitiatedOut(
        payment_id=str(p.id),
        reference=p.reference,
        amount=p.amount,
        currency=p.currency,
        status=p.status,
        checkout_url=result.session.checkout_url,
        method=p.method,
        provider=p.provider,
    )


@router.post("/webhook", response_model=WebhookOut)
async def payment_webhook(
    request: Request,
    ctx: Ctx,
    x_webhook_signature: Annotated[str | None, Header()] = None,
) -> WebhookOut:
    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Webhook body must be a JSON object") from None
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    outcome = await ctx.payment_service.handle_webhook(payload, x_webhook_signature)
    return WebhookOut(
        message=outcome.message,
        reference=outcome.payment.reference,
        status=outcome.payment.status,
        applied=outcome.applied,
    )


@router.get("/history", response_model=list[PaymentOut])
async def payment_history(principal: CurrentUser, ctx: Ctx) -> list[PaymentOut]:
    payments = await ctx.payment_service.history(principal.uid)
    return [PaymentOut.from_domain(p) for p in payments]


@router.get("", response_model=Page[PaymentOut])
async def list_payments(
    _admin: AdminUser,
    ctx: Ctx,
    paging: Pagination,
    payment_status: Annotated[str | None, Query(alias="status")] = None,
    method: str | None = None,
) -> Page[PaymentOut]:
    page, limit = paging
    payments, total = await ctx.payment_service.list_all(
        status=payment_status,
        method=normalize_method(method) or method,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return Page[PaymentOut].build(
        [PaymentOut.from_domain(p) for p in payments], total, page, limit
    )


@router.get("/{payment_id}", response_model=PaymentOut)
async def get_payment(payment_id: UUID, principal: CurrentUser, ctx: Ctx) -> PaymentOut:
    payment = await ctx.payment_service.get(payment_id)
    check_owner_or_admin(principal, payment.user_id)
    return PaymentOut.from_domain(payment)


@router.post("/{payment_id}/approve", response_model=PaymentOut)
async def approve_payment(
    payment_id: UUID, admin: AdminUser, ctx: Ctx, payload: PaymentActionIn | None = None
) -> PaymentOut:
    payment = await ctx.payment_service.approve(
        payment_id, transaction_id=payload.transaction_id if payload else None
    )
    logger.info("Payment approved  payment=%s by=%s", payment_id, admin.user_id)
    return PaymentOut.from_domain(payment)


@router.post("/{payment_id}/reject", response_model=PaymentOut)
async def reject_payment(
    payment_id: UUID, admin: AdminUser, ctx: Ctx, payload: PaymentActionIn | None = None
) -> PaymentOut:
    payment = await ctx.payment_service.reject(
        payment_id, reason=payload.reason if payload else None
    )
    logger.info("Payment rejected  payment=%s by=%s", payment_id, admin.user_id)
    return PaymentOut.from_domain(payment)


@router.post("/{payment_id}/refund", response_model=PaymentOut)
async def refund_payment(
    payment_id: UUID, admin: AdminUser, ctx: Ctx, payload: PaymentActionIn | None = None
) -> PaymentOut:
    payment = await ctx.payment_service.refund(
        payment_id, reason=payload.reason if payload else None
    )
    logger.info("Payment refunded  payment=%s by=%s", payment_id, admin.user_id)
    return PaymentOut.from_domain(payment)
