# backend/app/repositories/__init__.py
"""
Repository Pattern Implementation for ThoughtCloud

This package provides the repository layer for data access,
separating business logic from database queries.

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    slots = RepositoryFactory.create_availability_repository(db)
    reserved = slots.mark_booked_if_free(slot_id)
"""

from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository, PayoutAccountRepository
from .session_repository import SessionRepository
from .webhook_event_repository import WebhookEventRepository

__all__ = [
    "BaseRepository",
    "RepositoryFactory",
    "AvailabilityRepository",
    "SessionRepository",
    "PaymentRepository",
    "PayoutAccountRepository",
    "WebhookEventRepository",
]
