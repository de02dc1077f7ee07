# backend/app/services/payment_ledger.py
"""
Payment ledger.

One row per processor authorization. A row starts ``authorized`` and moves
exactly once to ``completed``, ``refunded`` or ``voided``. Rows are never
deleted, and a session has at most one non-voided row.

Ledger writes flush only; the calling service owns the transaction so a
ledger change lands atomically with the session change it belongs to.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    DuplicatePaymentException,
    InvalidTransitionException,
    NotFoundException,
)
from ..models.payment import Payment, PaymentStatus
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class PaymentLedger(BaseService):
    """Append-only record of session payments and their terminal outcome."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.repository = RepositoryFactory.create_payment_repository(db)

    @BaseService.measure_operation("ledger_create")
    def create(
        self,
        session_id: str,
        mentor_id: str,
        mentee_id: str,
        amount: int,
        currency: str,
        external_intent_id: str,
    ) -> Payment:
        if self.repository.get_active_for_session(session_id) is not None:
            raise DuplicatePaymentException(session_id)
        payment = self.repository.create(
            session_id=session_id,
            mentor_id=mentor_id,
            mentee_id=mentee_id,
            amount=amount,
            currency=currency.lower(),
            status=PaymentStatus.AUTHORIZED.value,
            external_intent_id=external_intent_id,
        )
        self.log_operation(
            "ledger_create", session_id=session_id, payment_id=payment.id, amount=amount
        )
        return payment

    def _require_authorized(self, payment_id: str, target: PaymentStatus) -> Payment:
        payment = self.repository.get_by_id(payment_id)
        if payment is None:
            raise NotFoundException(f"Payment {payment_id} not found", code="PAYMENT_NOT_FOUND")
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise InvalidTransitionException("payment", payment.status, target.value)
        return payment

    @BaseService.measure_operation("ledger_mark_completed")
    def mark_completed(
        self,
        payment_id: str,
        transfer_id: Optional[str],
        platform_fee: int,
        transaction_id: Optional[str],
    ) -> Payment:
        payment = self._require_authorized(payment_id, PaymentStatus.COMPLETED)
        payment.status = PaymentStatus.COMPLETED.value
        payment.transfer_id = transfer_id
        payment.platform_fee = platform_fee
        payment.transaction_id = transaction_id
        self.repository.flush()
        return payment

    @BaseService.measure_operation("ledger_mark_refunded")
    def mark_refunded(self, payment_id: str, refund_id: Optional[str]) -> Payment:
        payment = self._require_authorized(payment_id, PaymentStatus.REFUNDED)
        payment.status = PaymentStatus.REFUNDED.value
        payment.refund_id = refund_id
        self.repository.flush()
        return payment

    @BaseService.measure_operation("ledger_mark_voided")
    def mark_voided(self, payment_id: str) -> Payment:
        payment = self._require_authorized(payment_id, PaymentStatus.VOIDED)
        payment.status = PaymentStatus.VOIDED.value
        self.repository.flush()
        return payment

    def get_by_session(self, session_id: str) -> Optional[Payment]:
        """The session's active payment, or its latest one when all were voided."""
        return self.repository.get_active_for_session(
            session_id
        ) or self.repository.get_latest_for_session(session_id)

    def get_by_intent(self, external_intent_id: str) -> Optional[Payment]:
        return self.repository.get_by_intent_id(external_intent_id)

    def list_for_user(self, user_id: str, limit: int = 100) -> List[Payment]:
        return self.repository.list_for_user(user_id, limit=limit)
