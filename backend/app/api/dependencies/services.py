# backend/app/api/dependencies/services.py
"""
Service layer dependencies.

Services are built per request around the request's database session.
Process-wide collaborators (settings, payment gateway, transition lock)
are created once by the application factory and read from ``app.state``.
"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ...core.config import Settings
from ...core.session_lock import SessionTransitionLock
from ...services.booking_orchestrator import BookingOrchestrator
from ...services.payment_gateway import PaymentGateway
from ...services.payment_ledger import PaymentLedger
from ...services.payout_manager import PayoutManager
from ...services.session_lifecycle import SessionLifecycleManager
from ...services.slot_allocator import SlotAllocator
from ...services.webhook_reconciler import WebhookReconciler
from .database import get_db


def get_settings_dep(request: Request) -> Settings:
    """Settings the application was built with."""
    return request.app.state.settings


def get_payment_gateway(request: Request) -> PaymentGateway:
    return request.app.state.payment_gateway


def get_session_lock(request: Request) -> SessionTransitionLock:
    return request.app.state.session_lock


def get_slot_allocator(db: Session = Depends(get_db)) -> SlotAllocator:
    """Get SlotAllocator instance for dependency injection."""
    return SlotAllocator(db)


def get_payment_ledger(db: Session = Depends(get_db)) -> PaymentLedger:
    return PaymentLedger(db)


def get_booking_orchestrator(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
) -> BookingOrchestrator:
    """
    Get booking orchestrator instance with all dependencies.

    Args:
        db: Database session
        gateway: Stripe gateway shared by the process
        settings: Application settings

    Returns:
        BookingOrchestrator instance
    """
    return BookingOrchestrator(db, gateway, settings)


def get_lifecycle_manager(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
    lock: SessionTransitionLock = Depends(get_session_lock),
) -> SessionLifecycleManager:
    """Get the session lifecycle manager."""
    return SessionLifecycleManager(db, gateway, settings, lock)


def get_payout_manager(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
) -> PayoutManager:
    return PayoutManager(db, gateway, settings)


def get_webhook_reconciler(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: Settings = Depends(get_settings_dep),
    lock: SessionTransitionLock = Depends(get_session_lock),
) -> WebhookReconciler:
    return WebhookReconciler(db, gateway, settings, lock)
