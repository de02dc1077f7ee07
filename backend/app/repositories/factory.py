# backend/app/repositories/factory.py
"""
Repository Factory for ThoughtCloud

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .availability_repository import AvailabilityRepository
    from .payment_repository import PaymentRepository, PayoutAccountRepository
    from .session_repository import SessionRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_base_repository(db: Session, model: Any) -> BaseRepository[Any]:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_availability_repository(db: Session) -> "AvailabilityRepository":
        from .availability_repository import AvailabilityRepository

        return AvailabilityRepository(db)

    @staticmethod
    def create_session_repository(db: Session) -> "SessionRepository":
        from .session_repository import SessionRepository

        return SessionRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_payout_account_repository(db: Session) -> "PayoutAccountRepository":
        from .payment_repository import PayoutAccountRepository

        return PayoutAccountRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)
