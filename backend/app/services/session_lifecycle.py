# backend/app/services/session_lifecycle.py
"""
Session lifecycle transitions.

    scheduled/pending --complete--> completed/completed   capture, fee split, transfer
    scheduled/pending --cancel----> cancelled/refunded    refund, release slot
    scheduled/pending --expire----> cancelled/voided      void hold, release slot

Each transition follows the same three phases:

1. Checks (actor, current status) with no side effects.
2. Processor calls, outside any DB transaction. A failure here raises
   ExternalServiceException and leaves session and payment untouched.
3. One DB transaction: conditional status update on ``status='scheduled'``
   plus the ledger mark, and for cancel and expiry the slot release.

Transitions of one session are serialized by SessionTransitionLock; the
conditional update rejects a losing writer even if the lock was bypassed.
Processor idempotency keys are derived from the session id, so repeating a
transition after a phase-2 failure never charges or transfers twice.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Iterator, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    AlreadyFinalizedException,
    AuthorizationError,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
)
from ..core.session_lock import SessionTransitionLock
from ..core.timezone_utils import utc_now
from ..models.mentoring_session import MentoringSession, SessionPaymentStatus, SessionStatus
from ..models.payment import Payment, PaymentStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .payment_gateway import REFUND_REASON_DEFAULT, PaymentGateway, idempotency_key
from .payment_ledger import PaymentLedger
from .payout_manager import PayoutManager
from .slot_allocator import SlotAllocator

logger = logging.getLogger(__name__)


def split_platform_fee(amount: int, fee_percentage: int) -> tuple[int, int]:
    """Return ``(platform_fee, transfer_amount)``; the fee rounds down."""
    platform_fee = amount * fee_percentage // 100
    return platform_fee, amount - platform_fee


@dataclass(frozen=True)
class CompletionResult:
    session: MentoringSession
    payment: Payment
    platform_fee: int
    transfer_amount: int


class SessionLifecycleManager(BaseService):
    """Drive a booked session to completion, cancellation or expiry."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        settings: Settings,
        lock: SessionTransitionLock,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.settings = settings
        self.lock = lock
        self.session_repository = RepositoryFactory.create_session_repository(db)
        self.slots = SlotAllocator(db)
        self.ledger = PaymentLedger(db)
        self.payouts = PayoutManager(db, gateway, settings)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_session(self, session_id: str) -> MentoringSession:
        session = self.session_repository.get_by_id(session_id)
        if session is None:
            raise NotFoundException(f"Session {session_id} not found", code="SESSION_NOT_FOUND")
        return session

    def get_session_for_user(self, session_id: str, user_id: str) -> MentoringSession:
        session = self.get_session(session_id)
        if not session.is_party(user_id):
            raise AuthorizationError(session_id=session_id)
        return session

    def list_sessions_for_user(
        self, user_id: str, status: Optional[str] = None, limit: int = 100
    ) -> List[MentoringSession]:
        return self.session_repository.list_for_user(user_id, status=status, limit=limit)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @contextmanager
    def _serialized(self, session_id: str) -> Iterator[MentoringSession]:
        with self.lock.hold(session_id) as acquired:
            if not acquired:
                raise AlreadyFinalizedException(session_id, "transition already in progress")
            session = self.get_session(session_id)
            # Another worker may have finished while we waited for the lock
            self.db.refresh(session)
            yield session

    def _authorized_payment(self, session: MentoringSession) -> Payment:
        payment = self.ledger.get_by_session(session.id)
        if payment is None:
            raise NotFoundException(
                f"No payment recorded for session {session.id}", code="PAYMENT_NOT_FOUND"
            )
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise InvalidTransitionException("payment", payment.status, "settled")
        return payment

    def _apply(self, session: MentoringSession, **values: Any) -> None:
        """Conditional terminal write; must run inside ``self.transaction()``."""
        if not self.session_repository.transition_if_scheduled(session.id, **values):
            raise AlreadyFinalizedException(session.id)

    @staticmethod
    def _require_scheduled(session: MentoringSession) -> None:
        if session.status != SessionStatus.SCHEDULED.value:
            raise AlreadyFinalizedException(session.id)

    # ------------------------------------------------------------------ #
    # Completion
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("complete_session")
    def complete(self, session_id: str, actor_id: str) -> CompletionResult:
        """
        Mentor marks the session held: capture, keep the platform fee and
        transfer the remainder to the mentor's Connect account.
        """
        session = self.get_session(session_id)
        if not session.is_party(actor_id):
            raise AuthorizationError(session_id=session_id)
        if actor_id != session.mentor_id:
            raise AuthorizationError("Only the mentor can complete a session", session_id=session_id)
        self._require_scheduled(session)

        with self._serialized(session_id) as session:
            self._require_scheduled(session)
            payment = self._authorized_payment(session)
            destination = self.payouts.get_transfer_destination(session.mentor_id)

            captured = self.gateway.capture(
                payment.external_intent_id, idempotency_key(session_id, "capture")
            )
            result = self._split_and_record(session, payment, destination, captured.charge_id)

        prometheus_metrics.record_session_transition("completed")
        self.log_operation(
            "complete_session",
            session_id=session_id,
            amount=payment.amount,
            platform_fee=result.platform_fee,
            transfer_amount=result.transfer_amount,
        )
        return result

    @BaseService.measure_operation("settle_captured")
    def settle_captured(self, session_id: str, charge_id: Optional[str] = None) -> CompletionResult:
        """
        Finish a session whose payment the processor reports as captured
        without this service having recorded it. Runs the fee split and
        transfer, skipping capture.
        """
        with self._serialized(session_id) as session:
            self._require_scheduled(session)
            payment = self._authorized_payment(session)
            destination = self.payouts.get_transfer_destination(session.mentor_id)
            result = self._split_and_record(session, payment, destination, charge_id)

        prometheus_metrics.record_session_transition("settled")
        self.log_operation("settle_captured", session_id=session_id, charge_id=charge_id)
        return result

    def _split_and_record(
        self,
        session: MentoringSession,
        payment: Payment,
        destination: str,
        charge_id: Optional[str],
    ) -> CompletionResult:
        platform_fee, transfer_amount = split_platform_fee(
            payment.amount, self.settings.platform_fee_percentage
        )
        transfer_id: Optional[str] = None
        if transfer_amount > 0:
            transfer = self.gateway.transfer(
                amount=transfer_amount,
                currency=payment.currency,
                destination_account_id=destination,
                source_charge_id=charge_id,
                idempotency_key=idempotency_key(session.id, "transfer"),
                metadata={"session_id": session.id, "payment_id": payment.id},
            )
            transfer_id = transfer.id

        with self.transaction():
            self._apply(
                session,
                status=SessionStatus.COMPLETED.value,
                payment_status=SessionPaymentStatus.COMPLETED.value,
                completed_at=utc_now(),
            )
            payment = self.ledger.mark_completed(
                payment.id,
                transfer_id=transfer_id,
                platform_fee=platform_fee,
                transaction_id=charge_id,
            )
        self.db.refresh(session)
        return CompletionResult(
            session=session,
            payment=payment,
            platform_fee=platform_fee,
            transfer_amount=transfer_amount,
        )

    # ------------------------------------------------------------------ #
    # Cancellation
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("cancel_session")
    def cancel(
        self,
        session_id: str,
        actor_id: str,
        reason: Optional[str] = None,
        refund_reason: str = REFUND_REASON_DEFAULT,
    ) -> MentoringSession:
        """Either party cancels before completion: full refund and the slot is freed."""
        session = self.get_session(session_id)
        if not session.is_party(actor_id):
            raise AuthorizationError(session_id=session_id)
        self._check_cancellable(session)

        with self._serialized(session_id) as session:
            self._check_cancellable(session)
            payment = self._authorized_payment(session)

            refund = self.gateway.refund(
                payment.external_intent_id,
                idempotency_key(session_id, "refund"),
                reason=refund_reason,
            )

            with self.transaction():
                self._apply(
                    session,
                    status=SessionStatus.CANCELLED.value,
                    payment_status=SessionPaymentStatus.REFUNDED.value,
                    cancelled_by=actor_id,
                    cancellation_reason=reason,
                    cancelled_at=utc_now(),
                )
                self.ledger.mark_refunded(payment.id, refund_id=refund.refund_id)
                self.slots.mark_slot_free(session.slot_id)
            self.db.refresh(session)

        prometheus_metrics.record_session_transition("cancelled")
        self.log_operation(
            "cancel_session",
            session_id=session_id,
            cancelled_by=actor_id,
            refund_method=refund.method,
            amount=payment.amount,
        )
        return session

    @staticmethod
    def _check_cancellable(session: MentoringSession) -> None:
        if session.status == SessionStatus.COMPLETED.value:
            raise InvalidTransitionException(
                "session", SessionStatus.COMPLETED.value, SessionStatus.CANCELLED.value
            )
        if session.status != SessionStatus.SCHEDULED.value:
            raise AlreadyFinalizedException(session.id)

    # ------------------------------------------------------------------ #
    # Expiry
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("expire_authorization")
    def expire_authorization(
        self,
        session_id: str,
        cancel_remote: bool = True,
        reason: str = "authorization_expired",
    ) -> MentoringSession:
        """
        Void an authorization that will never be captured and free the slot.

        ``cancel_remote=False`` is for holds the processor already cancelled.
        """
        with self._serialized(session_id) as session:
            self._require_scheduled(session)
            payment = self._authorized_payment(session)

            if cancel_remote:
                self.gateway.cancel_authorization(
                    payment.external_intent_id, idempotency_key(session_id, "void")
                )

            with self.transaction():
                self._apply(
                    session,
                    status=SessionStatus.CANCELLED.value,
                    payment_status=SessionPaymentStatus.VOIDED.value,
                    cancellation_reason=reason,
                    cancelled_at=utc_now(),
                )
                self.ledger.mark_voided(payment.id)
                self.slots.mark_slot_free(session.slot_id)
            self.db.refresh(session)

        prometheus_metrics.record_session_transition("expired")
        self.log_operation("expire_authorization", session_id=session_id, reason=reason)
        return session

    @BaseService.measure_operation("expire_stale_authorizations")
    def expire_stale_authorizations(self, now: Optional[datetime] = None) -> List[str]:
        """
        Void every scheduled session whose hold is older than the configured TTL.

        Does nothing unless ``authorization_ttl_minutes`` is set.
        """
        ttl = self.settings.authorization_ttl_minutes
        if ttl is None:
            return []
        cutoff = (now or utc_now()) - timedelta(minutes=ttl)
        expired: List[str] = []
        for session in self.session_repository.list_scheduled_created_before(cutoff):
            try:
                self.expire_authorization(session.id)
                expired.append(session.id)
            except DomainException as exc:
                self.logger.warning(f"Could not expire session {session.id}: {exc.message}")
        return expired
