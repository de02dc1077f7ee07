"""HTTP tests for booking, completion, cancellation and payment listing."""

from datetime import date, timedelta

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from app.models.payment import MentorPayoutAccount, OnboardingStatus
from tests.helpers.builders import auth_headers, new_id


@pytest.fixture
def slot_id(client: TestClient, mentor_id: str) -> str:
    response = client.post(
        "/availability",
        json={
            "date": (date.today() + timedelta(days=5)).isoformat(),
            "start_time": "10:00:00",
            "end_time": "11:00:00",
        },
        headers=auth_headers(mentor_id),
    )
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def booked(client: TestClient, mentor_id: str, mentee_id: str, slot_id: str) -> dict:
    response = client.post(
        "/payment-intents",
        json={"mentor_id": mentor_id, "slot_id": slot_id, "amount": 7500, "currency": "USD"},
        headers=auth_headers(mentee_id),
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def mentor_account(app_db: Session, mentor_id: str) -> MentorPayoutAccount:
    account = MentorPayoutAccount(
        id=new_id(),
        mentor_id=mentor_id,
        external_account_id="acct_mentor",
        onboarding_status=OnboardingStatus.COMPLETE.value,
        payouts_enabled=True,
    )
    app_db.add(account)
    app_db.commit()
    return account


class TestBooking:
    def test_booking_returns_client_secret_and_session(self, booked: dict, mentor_id: str):
        assert booked["client_secret"].endswith("_secret")
        session = booked["session"]
        assert session["mentor_id"] == mentor_id
        assert session["status"] == "scheduled"
        assert session["payment_status"] == "pending"
        assert session["payment_amount"] == 7500
        assert session["currency"] == "usd"
        assert booked["payment_intent_id"] == f"pi_{session['id']}"

    def test_second_booking_gets_conflict_envelope(
        self, client: TestClient, booked: dict, mentor_id: str, slot_id: str
    ):
        response = client.post(
            "/payment-intents",
            json={"mentor_id": mentor_id, "slot_id": slot_id, "amount": 7500},
            headers=auth_headers(new_id()),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "SLOT_UNAVAILABLE"
        assert set(body) == {"error", "code", "details"}

    def test_requires_caller_identity(self, client: TestClient, mentor_id: str, slot_id: str):
        response = client.post(
            "/payment-intents",
            json={"mentor_id": mentor_id, "slot_id": slot_id, "amount": 7500},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"

    def test_malformed_body_is_a_validation_error(self, client: TestClient, mentee_id: str):
        response = client.post(
            "/payment-intents",
            json={"slot_id": "x", "amount": "lots", "surprise": True},
            headers=auth_headers(mentee_id),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "Request validation failed"
        assert body["code"] == "validation_error"
        assert body["details"]["errors"]

    def test_non_positive_amount_is_rejected(
        self, client: TestClient, mentor_id: str, mentee_id: str, slot_id: str
    ):
        response = client.post(
            "/payment-intents",
            json={"mentor_id": mentor_id, "slot_id": slot_id, "amount": 0},
            headers=auth_headers(mentee_id),
        )

        assert response.status_code == 400


class TestSessionReads:
    def test_both_parties_see_the_session(
        self, client: TestClient, booked: dict, mentor_id: str, mentee_id: str
    ):
        session_id = booked["session"]["id"]

        for user in (mentor_id, mentee_id):
            listing = client.get("/sessions", headers=auth_headers(user))
            assert listing.status_code == 200
            assert [s["id"] for s in listing.json()["sessions"]] == [session_id]

            detail = client.get(f"/sessions/{session_id}", headers=auth_headers(user))
            assert detail.status_code == 200
            assert detail.json()["id"] == session_id

    def test_status_filter(self, client: TestClient, booked: dict, mentee_id: str):
        response = client.get(
            "/sessions", params={"status": "completed"}, headers=auth_headers(mentee_id)
        )

        assert response.status_code == 200
        assert response.json() == {"sessions": [], "total": 0}

    def test_outsider_cannot_read_session(self, client: TestClient, booked: dict):
        response = client.get(f"/sessions/{booked['session']['id']}", headers=auth_headers(new_id()))

        assert response.status_code == 403

    def test_payments_listing(self, client: TestClient, booked: dict, mentee_id: str):
        response = client.get("/payments", headers=auth_headers(mentee_id))

        assert response.status_code == 200
        payments = response.json()["payments"]
        assert len(payments) == 1
        assert payments[0]["status"] == "authorized"
        assert payments[0]["amount"] == 7500


class TestCompletion:
    def test_mentor_completes_session(
        self, client: TestClient, booked: dict, mentor_id: str, mentor_account, gateway
    ):
        session_id = booked["session"]["id"]

        response = client.post(
            "/payments/capture", json={"session_id": session_id}, headers=auth_headers(mentor_id)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["session"]["status"] == "completed"
        assert body["session"]["payment_status"] == "completed"
        assert body["payment"]["status"] == "completed"
        assert body["platform_fee"] == 1500
        assert body["transfer_amount"] == 6000
        assert gateway.transfer.call_args.kwargs["destination_account_id"] == "acct_mentor"

    def test_second_completion_is_rejected(
        self, client: TestClient, booked: dict, mentor_id: str, mentor_account
    ):
        payload = {"session_id": booked["session"]["id"]}
        client.post("/payments/capture", json=payload, headers=auth_headers(mentor_id))

        response = client.post("/payments/capture", json=payload, headers=auth_headers(mentor_id))

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_FINALIZED"

    def test_mentee_cannot_complete(
        self, client: TestClient, booked: dict, mentee_id: str, mentor_account
    ):
        response = client.post(
            "/payments/capture",
            json={"session_id": booked["session"]["id"]},
            headers=auth_headers(mentee_id),
        )

        assert response.status_code == 403


class TestCancellation:
    def test_mentee_cancels_with_refund(
        self, client: TestClient, booked: dict, mentor_id: str, mentee_id: str
    ):
        session_id = booked["session"]["id"]

        response = client.post(
            "/payments/refund",
            json={"session_id": session_id, "cancellation_reason": "conflict at work"},
            headers=auth_headers(mentee_id),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["session"]["status"] == "cancelled"
        assert body["session"]["payment_status"] == "refunded"
        assert body["session"]["cancelled_by"] == mentee_id
        assert body["payment"]["status"] == "refunded"

        slots = client.get(f"/mentors/{mentor_id}/availability", params={"available_only": True})
        assert [s["id"] for s in slots.json()["slots"]] == [booked["session"]["slot_id"]]

    def test_unknown_refund_reason_is_rejected(
        self, client: TestClient, booked: dict, mentee_id: str
    ):
        response = client.post(
            "/payments/refund",
            json={"session_id": booked["session"]["id"], "reason": "changed_my_mind"},
            headers=auth_headers(mentee_id),
        )

        assert response.status_code == 422
