"""
Tests for BookingOrchestrator.

Booking reserves the slot, authorizes the amount and binds the session and
ledger row. Each failure after the reservation must hand the slot back.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, time, timedelta
import logging
import threading
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.exceptions import (
    ExternalServiceException,
    NotFoundException,
    PastDateException,
    SlotUnavailableException,
    ValidationException,
)
from app.database import Base, create_db_engine, create_session_factory
from app.models.availability import AvailabilitySlot
from app.models.mentoring_session import MentoringSession
from app.models.payment import Payment
from app.services.booking_orchestrator import BookingOrchestrator
from tests.helpers.builders import new_id


@pytest.fixture
def orchestrator(db: Session, gateway: MagicMock, test_settings: Settings) -> BookingOrchestrator:
    return BookingOrchestrator(db, gateway, test_settings)


class TestBookSession:
    def test_books_slot_and_authorizes_amount(
        self, orchestrator, gateway, make_slot, mentor_id, mentee_id, db
    ):
        """$75.00 booking: session scheduled/pending, payment authorized for 7500."""
        slot = make_slot(mentor_id)

        result = orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

        session = result.session
        assert session.status == "scheduled"
        assert session.payment_status == "pending"
        assert session.payment_amount == 7500
        assert session.currency == "usd"
        assert (session.date, session.start_time, session.end_time) == (
            slot.date,
            slot.start_time,
            slot.end_time,
        )
        assert session.meeting_link.startswith("https://meet.google.com/")

        payment = result.payment
        assert payment.status == "authorized"
        assert payment.amount == 7500
        assert payment.session_id == session.id
        assert payment.external_intent_id == f"pi_{session.id}"
        assert result.client_secret == f"pi_{session.id}_secret"

        assert db.get(AvailabilitySlot, slot.id).is_booked is True

        gateway.authorize.assert_called_once()
        kwargs = gateway.authorize.call_args.kwargs
        assert kwargs["amount"] == 7500
        assert kwargs["idempotency_key"] == f"{session.id}:authorize"
        assert kwargs["metadata"]["slot_id"] == slot.id

    def test_second_booking_of_same_slot_conflicts(
        self, orchestrator, gateway, make_slot, mentor_id, mentee_id
    ):
        slot = make_slot(mentor_id)
        orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

        with pytest.raises(SlotUnavailableException) as exc_info:
            orchestrator.book_session(mentor_id, new_id(), slot.id, 7500)

        assert exc_info.value.message == "slot unavailable"
        assert gateway.authorize.call_count == 1

    def test_currency_is_normalized(self, orchestrator, make_slot, mentor_id, mentee_id):
        slot = make_slot(mentor_id)

        result = orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500, currency="EUR")

        assert result.session.currency == "eur"
        assert result.payment.currency == "eur"


class TestValidation:
    @pytest.mark.parametrize("amount", [0, -100, 10**9])
    def test_rejects_bad_amount(self, orchestrator, gateway, make_slot, mentor_id, mentee_id, db, amount):
        slot = make_slot(mentor_id)

        with pytest.raises(ValidationException):
            orchestrator.book_session(mentor_id, mentee_id, slot.id, amount)

        gateway.authorize.assert_not_called()
        assert db.get(AvailabilitySlot, slot.id).is_booked is False

    def test_rejects_bad_currency(self, orchestrator, make_slot, mentor_id, mentee_id):
        slot = make_slot(mentor_id)

        with pytest.raises(ValidationException):
            orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500, currency="dollars")

    def test_mentor_cannot_book_own_slot(self, orchestrator, make_slot, mentor_id):
        slot = make_slot(mentor_id)

        with pytest.raises(ValidationException):
            orchestrator.book_session(mentor_id, mentor_id, slot.id, 7500)

    def test_slot_must_belong_to_mentor(self, orchestrator, make_slot, mentor_id, mentee_id):
        slot = make_slot(new_id())

        with pytest.raises(NotFoundException):
            orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

    def test_unknown_slot(self, orchestrator, mentor_id, mentee_id):
        with pytest.raises(NotFoundException):
            orchestrator.book_session(mentor_id, mentee_id, new_id(), 7500)

    def test_past_slot(self, orchestrator, make_slot, mentor_id, mentee_id):
        slot = make_slot(mentor_id, slot_date=date.today() - timedelta(days=2))

        with pytest.raises(PastDateException):
            orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

    def test_notes_length(self, orchestrator, make_slot, mentor_id, mentee_id):
        slot = make_slot(mentor_id)

        with pytest.raises(ValidationException):
            orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500, notes="x" * 1001)


class TestCompensation:
    def test_authorization_failure_releases_slot(
        self, orchestrator, gateway, make_slot, mentor_id, mentee_id, db
    ):
        slot = make_slot(mentor_id)
        gateway.authorize.side_effect = ExternalServiceException(
            "Failed to authorize payment: Your card was declined.", processor_code="card_declined"
        )

        with pytest.raises(ExternalServiceException) as exc_info:
            orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

        assert exc_info.value.processor_code == "card_declined"
        assert db.get(AvailabilitySlot, slot.id).is_booked is False
        assert db.query(MentoringSession).count() == 0
        assert db.query(Payment).count() == 0

    def test_bind_failure_voids_authorization_and_releases_slot(
        self, orchestrator, gateway, make_slot, mentor_id, mentee_id, db
    ):
        slot = make_slot(mentor_id)

        with patch.object(orchestrator.ledger, "create", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError):
                orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

        assert db.get(AvailabilitySlot, slot.id).is_booked is False
        assert db.query(MentoringSession).count() == 0
        gateway.cancel_authorization.assert_called_once()
        intent_id, key = gateway.cancel_authorization.call_args.args
        assert intent_id.startswith("pi_")
        assert key.endswith(":void")

    def test_failed_void_is_logged_as_orphan(
        self, orchestrator, gateway, make_slot, mentor_id, mentee_id, caplog
    ):
        slot = make_slot(mentor_id)
        gateway.cancel_authorization.side_effect = ExternalServiceException(
            "Failed to cancel authorization", processor_code="api_error"
        )

        with caplog.at_level(logging.ERROR):
            with patch.object(orchestrator.ledger, "create", side_effect=RuntimeError("db down")):
                with pytest.raises(RuntimeError):
                    orchestrator.book_session(mentor_id, mentee_id, slot.id, 7500)

        orphan_records = [r for r in caplog.records if r.getMessage() == "orphaned_authorization"]
        assert len(orphan_records) == 1
        assert orphan_records[0].external_intent_id.startswith("pi_")


def test_concurrent_bookings_of_one_slot(tmp_path, gateway: MagicMock):
    """Exactly one of several simultaneous bookings wins the slot."""
    settings = Settings(
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'race.db'}",
        redis_url=None,
        stripe_secret_key="sk_test_thoughtcloud",
    )
    engine = create_db_engine(settings)
    Base.metadata.create_all(bind=engine)
    factory = create_session_factory(engine)

    mentor_id = new_id()
    setup = factory()
    slot = AvailabilitySlot(
        id=new_id(),
        mentor_id=mentor_id,
        date=date.today() + timedelta(days=3),
        start_time=time(10, 0),
        end_time=time(11, 0),
        is_booked=False,
    )
    setup.add(slot)
    setup.commit()
    slot_id = slot.id
    setup.close()

    attempts = 4
    barrier = threading.Barrier(attempts)

    def _book(_: int) -> str:
        db = factory()
        try:
            barrier.wait()
            BookingOrchestrator(db, gateway, settings).book_session(
                mentor_id, new_id(), slot_id, 7500
            )
            return "booked"
        except SlotUnavailableException:
            return "conflict"
        finally:
            db.close()

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        outcomes = list(pool.map(_book, range(attempts)))

    assert outcomes.count("booked") == 1
    assert outcomes.count("conflict") == attempts - 1

    check = factory()
    try:
        assert check.get(AvailabilitySlot, slot_id).is_booked is True
        assert check.query(MentoringSession).filter_by(slot_id=slot_id).count() == 1
    finally:
        check.close()
        engine.dispose()
