# backend/app/repositories/session_repository.py
"""
Session Repository for ThoughtCloud

Data access for mentoring sessions, including the conditional terminal
update used to settle completion/cancellation races.
"""

from datetime import datetime
import logging
from typing import Any, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.mentoring_session import MentoringSession, SessionPaymentStatus, SessionStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository[MentoringSession]):
    """Repository for mentoring session data access."""

    def __init__(self, db: Session):
        super().__init__(db, MentoringSession)

    def list_for_user(
        self, user_id: str, status: Optional[str] = None, limit: int = 100
    ) -> List[MentoringSession]:
        query = self._build_query().filter(
            or_(MentoringSession.mentor_id == user_id, MentoringSession.mentee_id == user_id)
        )
        if status:
            query = query.filter(MentoringSession.status == status)
        query = query.order_by(MentoringSession.date.desc(), MentoringSession.start_time.desc())
        return self._execute_query(query.limit(limit))

    def list_scheduled_created_before(self, cutoff: datetime) -> List[MentoringSession]:
        query = self._build_query().filter(
            MentoringSession.status == SessionStatus.SCHEDULED.value,
            MentoringSession.payment_status == SessionPaymentStatus.PENDING.value,
            MentoringSession.created_at < cutoff,
        )
        return self._execute_query(query)

    def transition_if_scheduled(self, session_id: str, **values: Any) -> bool:
        """
        Apply ``values`` only while the session is still ``scheduled``.

        Returns False when another writer already moved the session.
        """
        try:
            updated = (
                self.db.query(MentoringSession)
                .filter(
                    MentoringSession.id == session_id,
                    MentoringSession.status == SessionStatus.SCHEDULED.value,
                )
                .update(
                    {getattr(MentoringSession, key): value for key, value in values.items()},
                    synchronize_session="fetch",
                )
            )
            return bool(updated)
        except SQLAlchemyError as e:
            self.logger.error(f"Error transitioning session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to update session: {str(e)}")
