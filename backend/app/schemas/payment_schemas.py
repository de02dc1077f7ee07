"""
Payment-related Pydantic schemas for ThoughtCloud.

Defines request and response models for booking payments, capture,
refunds, mentor Connect accounts, balances, payouts and webhooks.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from ..core.constants import MAX_NOTES_LENGTH, MAX_REASON_LENGTH
from ._strict_base import StrictModel, StrictRequestModel
from .session import SessionResponse

# ========== Request Models ==========


class CreatePaymentIntentRequest(StrictRequestModel):
    """Book a slot: reserve it and authorize the session price."""

    mentor_id: str = Field(..., min_length=1)
    slot_id: str = Field(..., min_length=1)
    amount: int = Field(..., description="Session price in minor units")
    currency: Optional[str] = Field(default=None, description="ISO currency code")
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)


class CapturePaymentRequest(StrictRequestModel):
    session_id: str = Field(..., min_length=1)


class RefundPaymentRequest(StrictRequestModel):
    session_id: str = Field(..., min_length=1)
    reason: Literal["duplicate", "fraudulent", "requested_by_customer"] = Field(
        default="requested_by_customer", description="Processor refund reason"
    )
    cancellation_reason: Optional[str] = Field(default=None, max_length=MAX_REASON_LENGTH)


class CreateConnectAccountRequest(StrictRequestModel):
    email: Optional[str] = Field(default=None, description="Mentor email for the Connect account")
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    type: Literal["express", "standard"] = Field(default="express")


class CreateMentorStripeAccountRequest(StrictRequestModel):
    email: Optional[str] = None
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    business_type: Optional[Literal["individual", "company"]] = "individual"


class PayoutRequest(StrictRequestModel):
    amount: int = Field(..., description="Payout amount in minor units")
    currency: Optional[str] = None


# ========== Response Models ==========


class PaymentResponse(StrictModel):
    id: str
    session_id: str
    mentor_id: str
    mentee_id: str
    amount: int
    currency: str
    status: str
    external_intent_id: str
    transfer_id: Optional[str] = None
    platform_fee: Optional[int] = None
    transaction_id: Optional[str] = None
    refund_id: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentListResponse(StrictModel):
    payments: List[PaymentResponse] = Field(default_factory=list)
    total: int


class PaymentIntentResponse(StrictModel):
    """Result of booking: the session and the secret the client confirms the card with."""

    client_secret: Optional[str] = None
    payment_intent_id: str
    session: SessionResponse


class CaptureResponse(StrictModel):
    session: SessionResponse
    payment: PaymentResponse
    platform_fee: int
    transfer_amount: int


class RefundResponse(StrictModel):
    session: SessionResponse
    payment: Optional[PaymentResponse] = None


class ConnectAccountResponse(StrictModel):
    account_id: str
    account_link: Optional[str] = Field(default=None, description="Onboarding URL")
    onboarding_status: str
    created: bool


class BalanceAmountResponse(StrictModel):
    amount: int
    currency: str


class BalanceResponse(StrictModel):
    mentor_id: str
    available: List[BalanceAmountResponse] = Field(default_factory=list)
    pending: List[BalanceAmountResponse] = Field(default_factory=list)
    instant_available: List[BalanceAmountResponse] = Field(default_factory=list)


class PayoutResponse(StrictModel):
    success: bool = True
    payout_id: str
    amount: int
    currency: str
    status: str
    arrival_date: Optional[int] = None


class WebhookResponse(StrictModel):
    """Acknowledgement returned to the processor."""

    status: str = Field(..., description="processed | ignored | duplicate | conflict")
    event_type: str
    action: Optional[str] = None
