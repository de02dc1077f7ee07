# backend/app/schemas/__init__.py
"""Pydantic schemas for ThoughtCloud request and response bodies."""

from .availability import AvailabilitySlotCreate, AvailabilitySlotList, AvailabilitySlotResponse
from .payment_schemas import (
    BalanceResponse,
    CapturePaymentRequest,
    CaptureResponse,
    ConnectAccountResponse,
    CreateConnectAccountRequest,
    CreateMentorStripeAccountRequest,
    CreatePaymentIntentRequest,
    PaymentIntentResponse,
    PaymentListResponse,
    PaymentResponse,
    PayoutRequest,
    PayoutResponse,
    RefundPaymentRequest,
    RefundResponse,
    WebhookResponse,
)
from .session import SessionListResponse, SessionResponse

__all__ = [
    "AvailabilitySlotCreate",
    "AvailabilitySlotList",
    "AvailabilitySlotResponse",
    "BalanceResponse",
    "CapturePaymentRequest",
    "CaptureResponse",
    "ConnectAccountResponse",
    "CreateConnectAccountRequest",
    "CreateMentorStripeAccountRequest",
    "CreatePaymentIntentRequest",
    "PaymentIntentResponse",
    "PaymentListResponse",
    "PaymentResponse",
    "PayoutRequest",
    "PayoutResponse",
    "RefundPaymentRequest",
    "RefundResponse",
    "SessionListResponse",
    "SessionResponse",
    "WebhookResponse",
]
