"""
Database models for ThoughtCloud.

- Availability slots published by mentors
- Mentoring sessions binding a slot to a payment
- Payment ledger and mentor payout accounts
- Mentor directory mirror
- Inbound webhook ledger
"""

from .availability import AvailabilitySlot
from .mentor import Mentor
from .mentoring_session import MentoringSession, SessionPaymentStatus, SessionStatus
from .payment import MentorPayoutAccount, OnboardingStatus, Payment, PaymentStatus
from .webhook_event import WebhookEvent

__all__ = [
    "AvailabilitySlot",
    "Mentor",
    "MentoringSession",
    "SessionStatus",
    "SessionPaymentStatus",
    "Payment",
    "PaymentStatus",
    "MentorPayoutAccount",
    "OnboardingStatus",
    "WebhookEvent",
]
