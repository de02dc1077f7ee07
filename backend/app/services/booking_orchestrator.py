# backend/app/services/booking_orchestrator.py
"""
Session booking.

Booking spans three systems with no shared transaction, so it runs as a
sequence of steps, each with a compensation:

1. reserve the slot (committed)             -> release_slot
2. authorize the payment with Stripe        -> cancel_authorization
3. create session + ledger row (one commit)

The session id is allocated before step 2 so the processor metadata and
idempotency keys refer to the real session.
"""

from dataclasses import dataclass
import logging
import re
from typing import Optional
import uuid

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.constants import MAX_NOTES_LENGTH, MAX_PAYMENT_AMOUNT
from ..core.exceptions import (
    ExternalServiceException,
    NotFoundException,
    PastDateException,
    ValidationException,
)
from ..core.timezone_utils import today_utc
from ..core.ulid_helper import generate_ulid
from ..models.mentoring_session import MentoringSession, SessionPaymentStatus, SessionStatus
from ..models.payment import Payment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .payment_gateway import PaymentGateway, idempotency_key
from .payment_ledger import PaymentLedger
from .slot_allocator import SlotAllocator

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")


@dataclass(frozen=True)
class BookingResult:
    session: MentoringSession
    payment: Payment
    client_secret: Optional[str]


class BookingOrchestrator(BaseService):
    """Reserve, authorize and bind a mentoring session."""

    def __init__(self, db: Session, gateway: PaymentGateway, settings: Settings):
        super().__init__(db)
        self.gateway = gateway
        self.settings = settings
        self.slots = SlotAllocator(db)
        self.ledger = PaymentLedger(db)
        self.session_repository = RepositoryFactory.create_session_repository(db)

    def generate_meeting_link(self) -> str:
        meeting_id = uuid.uuid4().hex[:12]
        return f"{self.settings.meeting_link_base_url.rstrip('/')}/{meeting_id}"

    def _validate(
        self,
        mentor_id: str,
        mentee_id: str,
        slot_id: str,
        amount: int,
        currency: str,
        notes: Optional[str],
    ) -> None:
        if not mentor_id or not mentee_id or not slot_id:
            raise ValidationException("mentor_id, mentee_id and slot_id are required")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException(
                "Amount must be a positive integer in minor units", details={"amount": amount}
            )
        if amount > MAX_PAYMENT_AMOUNT:
            raise ValidationException("Amount exceeds the maximum", details={"amount": amount})
        if not currency or not _CURRENCY_RE.match(currency):
            raise ValidationException(
                "Currency must be a 3-letter ISO code", details={"currency": currency}
            )
        if mentor_id == mentee_id:
            raise ValidationException("A mentor cannot book their own slot")
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationException(f"Notes must be at most {MAX_NOTES_LENGTH} characters")

        slot = self.slots.get_slot(slot_id)
        if slot.mentor_id != mentor_id:
            raise NotFoundException(
                f"Slot {slot_id} not found for mentor {mentor_id}", code="SLOT_NOT_FOUND"
            )
        if slot.date < today_utc():
            raise PastDateException(slot.date.isoformat())

    @BaseService.measure_operation("book_session")
    def book_session(
        self,
        mentor_id: str,
        mentee_id: str,
        slot_id: str,
        amount: int,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        """
        Book ``slot_id`` for ``mentee_id`` and hold ``amount`` on their card.

        Raises:
            ValidationException / NotFoundException: bad input, nothing changed
            SlotUnavailableException: another booking holds the slot
            ExternalServiceException: authorization failed, slot released
        """
        currency = (currency or self.settings.stripe_currency).lower()
        self._validate(mentor_id, mentee_id, slot_id, amount, currency, notes)

        session_id = generate_ulid()

        # 1. Reserve
        slot = self.slots.reserve_slot(slot_id)

        # 2. Authorize
        try:
            intent = self.gateway.authorize(
                amount=amount,
                currency=currency,
                metadata={
                    "session_id": session_id,
                    "mentor_id": mentor_id,
                    "mentee_id": mentee_id,
                    "slot_id": slot_id,
                },
                idempotency_key=idempotency_key(session_id, "authorize"),
            )
        except Exception as exc:
            self.logger.warning(
                f"Authorization failed for slot {slot_id}; releasing reservation: {str(exc)}"
            )
            self.slots.release_slot(slot_id)
            raise

        # 3. Bind session and ledger record atomically
        try:
            with self.transaction():
                session = self.session_repository.create(
                    id=session_id,
                    mentor_id=mentor_id,
                    mentee_id=mentee_id,
                    slot_id=slot_id,
                    date=slot.date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    status=SessionStatus.SCHEDULED.value,
                    payment_status=SessionPaymentStatus.PENDING.value,
                    payment_amount=amount,
                    currency=currency,
                    notes=notes,
                    meeting_link=self.generate_meeting_link(),
                )
                payment = self.ledger.create(
                    session_id=session_id,
                    mentor_id=mentor_id,
                    mentee_id=mentee_id,
                    amount=amount,
                    currency=currency,
                    external_intent_id=intent.id,
                )
        except Exception as exc:
            self.logger.error(f"Failed to record session {session_id}; compensating: {str(exc)}")
            self.slots.release_slot(slot_id)
            self._void_orphan(session_id, intent.id)
            raise

        prometheus_metrics.record_session_transition("booked")
        self.log_operation(
            "book_session",
            session_id=session_id,
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            slot_id=slot_id,
            amount=amount,
        )
        return BookingResult(session=session, payment=payment, client_secret=intent.client_secret)

    def _void_orphan(self, session_id: str, intent_id: str) -> None:
        try:
            self.gateway.cancel_authorization(intent_id, idempotency_key(session_id, "void"))
        except ExternalServiceException as exc:
            prometheus_metrics.inc_orphaned_authorization()
            self.logger.error(
                "orphaned_authorization",
                extra={
                    "session_id": session_id,
                    "external_intent_id": intent_id,
                    "error": str(exc),
                    "processor_code": exc.processor_code,
                },
            )
