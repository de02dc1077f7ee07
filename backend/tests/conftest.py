# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets its own in-memory SQLite database (StaticPool, so the
threadpool used by async routes sees the same connection). Stripe is never
called: service tests use a PaymentGateway double, gateway tests patch the
SDK resource classes directly.
"""

import os
import sys

# Set testing mode BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "test")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import date, time, timedelta
from typing import Callable, Optional
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.session_lock import SessionTransitionLock
from app.database import Base, create_db_engine, create_session_factory
from app.main import create_app
from app.models.availability import AvailabilitySlot
from app.models.payment import MentorPayoutAccount, OnboardingStatus
from app.services.payment_gateway import (
    AccountBalance,
    AccountStatus,
    BalanceAmount,
    CapturedPayment,
    ConnectedAccountResult,
    PaymentGateway,
    PaymentIntentResult,
    PayoutResult,
    RefundResult,
    TransferResult,
)
from tests.helpers.builders import new_id


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="test",
        database_url="sqlite:///:memory:",
        redis_url=None,
        stripe_secret_key="sk_test_thoughtcloud",
        stripe_webhook_secret="",
        read_retry_backoff_seconds=0,
        authorization_ttl_minutes=None,
    )


@pytest.fixture
def engine(test_settings: Settings):
    engine = create_db_engine(test_settings)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Session:
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def lock() -> SessionTransitionLock:
    return SessionTransitionLock(None, ttl_seconds=30)


@pytest.fixture
def gateway() -> MagicMock:
    """PaymentGateway double whose calls all succeed."""
    gw = MagicMock(spec=PaymentGateway)
    gw.authorize.side_effect = lambda amount, currency, metadata, idempotency_key: PaymentIntentResult(
        id=f"pi_{metadata['session_id']}",
        status="requires_payment_method",
        client_secret=f"pi_{metadata['session_id']}_secret",
        amount=amount,
    )
    gw.capture.side_effect = lambda intent_id, idempotency_key: CapturedPayment(
        intent_id=intent_id, charge_id="ch_123", amount_received=0, status="succeeded"
    )
    gw.transfer.side_effect = lambda **kwargs: TransferResult(
        id="tr_123", amount=kwargs["amount"], destination=kwargs["destination_account_id"]
    )
    gw.refund.side_effect = lambda intent_id, idempotency_key, amount=None, reason=None: RefundResult(
        intent_id=intent_id, amount=amount, status="canceled", method="cancel"
    )
    gw.cancel_authorization.side_effect = lambda intent_id, idempotency_key, cancellation_reason="abandoned": PaymentIntentResult(
        id=intent_id, status="canceled"
    )
    gw.create_connected_account.return_value = ConnectedAccountResult(
        account_id="acct_new", onboarding_url="https://connect.stripe.com/setup/acct_new"
    )
    gw.create_onboarding_link.return_value = "https://connect.stripe.com/setup/again"
    gw.retrieve_account.side_effect = lambda account_id: AccountStatus(
        account_id=account_id,
        charges_enabled=False,
        payouts_enabled=False,
        details_submitted=False,
    )
    gw.retrieve_balance.return_value = AccountBalance(
        available=[BalanceAmount(amount=8000, currency="usd")],
        pending=[BalanceAmount(amount=1200, currency="usd")],
    )
    gw.create_payout.side_effect = lambda **kwargs: PayoutResult(
        id="po_123", amount=kwargs["amount"], currency=kwargs["currency"], status="pending"
    )
    return gw


@pytest.fixture
def mentor_id() -> str:
    return new_id()


@pytest.fixture
def mentee_id() -> str:
    return new_id()


@pytest.fixture
def make_slot(db: Session) -> Callable[..., AvailabilitySlot]:
    def _make(
        mentor_id: str,
        slot_date: Optional[date] = None,
        start: time = time(10, 0),
        end: time = time(11, 0),
        is_booked: bool = False,
    ) -> AvailabilitySlot:
        slot = AvailabilitySlot(
            id=new_id(),
            mentor_id=mentor_id,
            date=slot_date or date.today() + timedelta(days=3),
            start_time=start,
            end_time=end,
            is_booked=is_booked,
        )
        db.add(slot)
        db.commit()
        return slot

    return _make


@pytest.fixture
def payout_account(db: Session, mentor_id: str) -> MentorPayoutAccount:
    account = MentorPayoutAccount(
        id=new_id(),
        mentor_id=mentor_id,
        external_account_id="acct_mentor",
        onboarding_status=OnboardingStatus.COMPLETE.value,
        payouts_enabled=True,
    )
    db.add(account)
    db.commit()
    return account


# ============================================================================
# HTTP
# ============================================================================


@pytest.fixture
def app(test_settings: Settings, gateway: MagicMock):
    application = create_app(test_settings)
    application.state.payment_gateway = gateway
    return application


@pytest.fixture
def app_db(app) -> Session:
    """Session bound to the application's own database."""
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client