# backend/app/routes/payments.py
"""
Payment routes for session booking, completion and cancellation.

Endpoints:
    POST /payment-intents   → Reserve a slot and authorize the session price
    POST /payments/capture  → Mentor completes the session (capture + payout split)
    POST /payments/refund   → Either party cancels (refund + slot released)
    GET  /payments          → Payments the caller is a party to
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from ..api.dependencies.auth import get_current_user_id
from ..api.dependencies.services import (
    get_booking_orchestrator,
    get_lifecycle_manager,
    get_payment_ledger,
)
from ..core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ..core.exceptions import DomainException
from ..schemas.payment_schemas import (
    CapturePaymentRequest,
    CaptureResponse,
    CreatePaymentIntentRequest,
    PaymentIntentResponse,
    PaymentListResponse,
    PaymentResponse,
    RefundPaymentRequest,
    RefundResponse,
)
from ..schemas.session import SessionResponse
from ..services.booking_orchestrator import BookingOrchestrator
from ..services.payment_ledger import PaymentLedger
from ..services.session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "/payment-intents",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_intent(
    payload: CreatePaymentIntentRequest,
    current_user_id: str = Depends(get_current_user_id),
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator),
) -> PaymentIntentResponse:
    """
    Book a slot for the calling mentee.

    The slot is reserved first, then the amount is authorized (not captured).
    The returned client secret is used by the client to confirm the card.
    """
    try:
        result = await run_in_threadpool(
            orchestrator.book_session,
            mentor_id=payload.mentor_id,
            mentee_id=current_user_id,
            slot_id=payload.slot_id,
            amount=payload.amount,
            currency=payload.currency,
            notes=payload.notes,
        )
    except DomainException as exc:
        handle_domain_exception(exc)

    return PaymentIntentResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment.external_intent_id,
        session=SessionResponse.model_validate(result.session),
    )


@router.post("/payments/capture", response_model=CaptureResponse)
async def capture_payment(
    payload: CapturePaymentRequest,
    current_user_id: str = Depends(get_current_user_id),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> CaptureResponse:
    """Mentor marks the session complete; the held amount is captured and split."""
    try:
        result = await run_in_threadpool(lifecycle.complete, payload.session_id, current_user_id)
    except DomainException as exc:
        handle_domain_exception(exc)

    return CaptureResponse(
        session=SessionResponse.model_validate(result.session),
        payment=PaymentResponse.model_validate(result.payment),
        platform_fee=result.platform_fee,
        transfer_amount=result.transfer_amount,
    )


@router.post("/payments/refund", response_model=RefundResponse)
async def refund_payment(
    payload: RefundPaymentRequest,
    current_user_id: str = Depends(get_current_user_id),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> RefundResponse:
    """Cancel a scheduled session with a full refund."""
    try:
        session = await run_in_threadpool(
            lifecycle.cancel,
            payload.session_id,
            current_user_id,
            reason=payload.cancellation_reason,
            refund_reason=payload.reason,
        )
        payment = await run_in_threadpool(ledger.get_by_session, session.id)
    except DomainException as exc:
        handle_domain_exception(exc)

    return RefundResponse(
        session=SessionResponse.model_validate(session),
        payment=PaymentResponse.model_validate(payment) if payment is not None else None,
    )


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    current_user_id: str = Depends(get_current_user_id),
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> PaymentListResponse:
    payments = await run_in_threadpool(ledger.list_for_user, current_user_id, limit)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        total=len(payments),
    )
