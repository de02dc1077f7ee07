"""
Payment Repository for ThoughtCloud

Handles data access for the payment ledger and mentor payout accounts.
"""

import logging
from typing import List, Optional, cast

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import RepositoryException
from ..models.payment import MentorPayoutAccount, Payment, PaymentStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    """Repository for payment ledger rows."""

    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_active_for_session(self, session_id: str) -> Optional[Payment]:
        """Latest non-voided payment for a session."""
        try:
            payment = (
                self._build_query()
                .filter(Payment.session_id == session_id, Payment.status != PaymentStatus.VOIDED.value)
                .order_by(Payment.created_at.desc())
                .first()
            )
            return cast(Optional[Payment], payment)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to get payment for session: {str(e)}")
            raise RepositoryException(f"Failed to get payment for session: {str(e)}")

    def get_latest_for_session(self, session_id: str) -> Optional[Payment]:
        try:
            payment = (
                self._build_query()
                .filter(Payment.session_id == session_id)
                .order_by(Payment.created_at.desc())
                .first()
            )
            return cast(Optional[Payment], payment)
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to get payment for session: {str(e)}")
            raise RepositoryException(f"Failed to get payment for session: {str(e)}")

    def get_by_intent_id(self, external_intent_id: str) -> Optional[Payment]:
        return self.find_one_by(external_intent_id=external_intent_id)

    def list_for_user(self, user_id: str, limit: int = 100) -> List[Payment]:
        query = (
            self._build_query()
            .filter(or_(Payment.mentor_id == user_id, Payment.mentee_id == user_id))
            .order_by(Payment.created_at.desc())
            .limit(limit)
        )
        return self._execute_query(query)


class PayoutAccountRepository(BaseRepository[MentorPayoutAccount]):
    """Repository for mentor Stripe Connect accounts."""

    def __init__(self, db: Session):
        super().__init__(db, MentorPayoutAccount)

    def get_by_mentor_id(self, mentor_id: str) -> Optional[MentorPayoutAccount]:
        return self.find_one_by(mentor_id=mentor_id)

    def get_by_external_id(self, external_account_id: str) -> Optional[MentorPayoutAccount]:
        return self.find_one_by(external_account_id=external_account_id)
