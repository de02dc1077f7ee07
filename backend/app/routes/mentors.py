# backend/app/routes/mentors.py
"""
Mentor payout routes (Stripe Connect).

Endpoints:
    POST /connect-accounts               → Create (or resume) the caller's Connect account
    POST /mentors/{mentor_id}/stripe-account → Same, addressed by mentor id
    GET  /mentors/{mentor_id}/balance    → Connect account balance
    POST /mentors/{mentor_id}/payout     → Pay out from the available balance
"""

import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from starlette.concurrency import run_in_threadpool

from ..api.dependencies.auth import get_current_user_id, require_same_user
from ..api.dependencies.services import get_payout_manager
from ..core.exceptions import DomainException
from ..schemas.payment_schemas import (
    BalanceAmountResponse,
    BalanceResponse,
    ConnectAccountResponse,
    CreateConnectAccountRequest,
    CreateMentorStripeAccountRequest,
    PayoutRequest,
    PayoutResponse,
)
from ..services.payment_gateway import BalanceAmount
from ..services.payout_manager import ConnectedAccountInfo, PayoutManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mentors"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _account_response(info: ConnectedAccountInfo) -> ConnectAccountResponse:
    return ConnectAccountResponse(
        account_id=info.account.external_account_id,
        account_link=info.onboarding_url,
        onboarding_status=info.account.onboarding_status,
        created=info.created,
    )


def _amounts(entries: List[BalanceAmount]) -> List[BalanceAmountResponse]:
    return [BalanceAmountResponse(amount=e.amount, currency=e.currency) for e in entries]


@router.post("/connect-accounts", response_model=ConnectAccountResponse)
async def create_connect_account(
    payload: CreateConnectAccountRequest,
    current_user_id: str = Depends(get_current_user_id),
    payouts: PayoutManager = Depends(get_payout_manager),
) -> ConnectAccountResponse:
    """Provision the calling mentor's Connect account and return an onboarding link."""
    try:
        info = await run_in_threadpool(
            payouts.ensure_connected_account,
            current_user_id,
            email=payload.email,
            country=payload.country,
            account_type=payload.type,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return _account_response(info)


@router.post("/mentors/{mentor_id}/stripe-account", response_model=ConnectAccountResponse)
async def create_mentor_stripe_account(
    mentor_id: str,
    payload: CreateMentorStripeAccountRequest,
    current_user_id: str = Depends(get_current_user_id),
    payouts: PayoutManager = Depends(get_payout_manager),
) -> ConnectAccountResponse:
    require_same_user(mentor_id, current_user_id)
    try:
        info = await run_in_threadpool(
            payouts.ensure_connected_account,
            mentor_id,
            email=payload.email,
            country=payload.country,
            business_type=payload.business_type,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return _account_response(info)


@router.get("/mentors/{mentor_id}/balance", response_model=BalanceResponse)
async def get_mentor_balance(
    mentor_id: str,
    current_user_id: str = Depends(get_current_user_id),
    payouts: PayoutManager = Depends(get_payout_manager),
) -> BalanceResponse:
    require_same_user(mentor_id, current_user_id)
    try:
        balance = await run_in_threadpool(payouts.get_balance, mentor_id)
    except DomainException as exc:
        handle_domain_exception(exc)
    return BalanceResponse(
        mentor_id=mentor_id,
        available=_amounts(balance.available),
        pending=_amounts(balance.pending),
        instant_available=_amounts(balance.instant_available),
    )


@router.post("/mentors/{mentor_id}/payout", response_model=PayoutResponse)
async def request_mentor_payout(
    mentor_id: str,
    payload: PayoutRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    current_user_id: str = Depends(get_current_user_id),
    payouts: PayoutManager = Depends(get_payout_manager),
) -> PayoutResponse:
    """
    Pay out ``amount`` from the mentor's available balance.

    Clients may send an ``Idempotency-Key`` header so a retried request does
    not create a second payout.
    """
    require_same_user(mentor_id, current_user_id)
    try:
        payout = await run_in_threadpool(
            payouts.request_payout,
            mentor_id,
            payload.amount,
            currency=payload.currency,
            idempotency_key=idempotency_key,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return PayoutResponse(
        success=True,
        payout_id=payout.id,
        amount=payout.amount,
        currency=payout.currency,
        status=payout.status,
        arrival_date=payout.arrival_date,
    )
