# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_user_id, require_same_user
from .database import get_db
from .services import (
    get_booking_orchestrator,
    get_lifecycle_manager,
    get_payment_gateway,
    get_payment_ledger,
    get_payout_manager,
    get_session_lock,
    get_settings_dep,
    get_slot_allocator,
    get_webhook_reconciler,
)

__all__ = [
    # Auth
    "get_current_user_id",
    "require_same_user",
    # Database
    "get_db",
    # Services
    "get_booking_orchestrator",
    "get_lifecycle_manager",
    "get_payment_gateway",
    "get_payment_ledger",
    "get_payout_manager",
    "get_session_lock",
    "get_settings_dep",
    "get_slot_allocator",
    "get_webhook_reconciler",
]
