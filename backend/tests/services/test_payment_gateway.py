"""
Tests for PaymentGateway.

The Stripe SDK resource classes are patched; no network traffic.
"""

from unittest.mock import patch

import pytest
import stripe

from app.core.config import Settings
from app.core.exceptions import ExternalServiceException
from app.services.payment_gateway import PaymentGateway, idempotency_key


@pytest.fixture
def stripe_gateway(test_settings: Settings) -> PaymentGateway:
    return PaymentGateway(test_settings)


def test_idempotency_key_format():
    assert idempotency_key("01SESSION", "capture") == "01SESSION:capture"


class TestAuthorize:
    @patch("stripe.PaymentIntent.create")
    def test_creates_manual_capture_intent(self, mock_create, stripe_gateway):
        mock_create.return_value = {
            "id": "pi_123",
            "status": "requires_payment_method",
            "client_secret": "pi_123_secret_abc",
            "amount": 7500,
        }

        result = stripe_gateway.authorize(
            amount=7500,
            currency="USD",
            metadata={"session_id": "s1"},
            idempotency_key="s1:authorize",
        )

        assert result.id == "pi_123"
        assert result.client_secret == "pi_123_secret_abc"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 7500
        assert kwargs["currency"] == "usd"
        assert kwargs["capture_method"] == "manual"
        assert kwargs["idempotency_key"] == "s1:authorize"
        assert kwargs["api_key"] == "sk_test_thoughtcloud"

    @patch("stripe.PaymentIntent.create")
    def test_card_error_maps_to_external_service_error(self, mock_create, stripe_gateway):
        mock_create.side_effect = stripe.CardError(
            "Your card was declined.", param="card", code="card_declined"
        )

        with pytest.raises(ExternalServiceException) as exc_info:
            stripe_gateway.authorize(
                amount=7500, currency="usd", metadata={}, idempotency_key="s1:authorize"
            )

        assert exc_info.value.processor_code == "card_declined"
        assert exc_info.value.status_code == 502
        assert exc_info.value.details["processor_code"] == "card_declined"

    @patch("stripe.PaymentIntent.create")
    def test_mutations_are_not_retried(self, mock_create, stripe_gateway):
        mock_create.side_effect = stripe.APIConnectionError("connection reset")

        with pytest.raises(ExternalServiceException):
            stripe_gateway.authorize(
                amount=7500, currency="usd", metadata={}, idempotency_key="s1:authorize"
            )
        assert mock_create.call_count == 1


class TestCaptureAndRefund:
    @patch("stripe.PaymentIntent.capture")
    def test_capture_reads_charge_id(self, mock_capture, stripe_gateway):
        mock_capture.return_value = {
            "id": "pi_123",
            "status": "succeeded",
            "amount_received": 7500,
            "latest_charge": "ch_789",
        }

        captured = stripe_gateway.capture("pi_123", "s1:capture")

        assert captured.charge_id == "ch_789"
        assert captured.amount_received == 7500
        mock_capture.assert_called_once_with(
            "pi_123", api_key="sk_test_thoughtcloud", idempotency_key="s1:capture"
        )

    @patch("stripe.Refund.create")
    @patch("stripe.PaymentIntent.cancel")
    @patch("stripe.PaymentIntent.retrieve")
    def test_refund_of_uncaptured_intent_cancels_it(
        self, mock_retrieve, mock_cancel, mock_refund, stripe_gateway
    ):
        mock_retrieve.return_value = {"id": "pi_123", "status": "requires_capture", "amount": 7500}
        mock_cancel.return_value = {"id": "pi_123", "status": "canceled"}

        result = stripe_gateway.refund("pi_123", "s1:refund")

        assert result.method == "cancel"
        assert result.amount == 7500
        assert result.status == "canceled"
        mock_refund.assert_not_called()
        assert mock_cancel.call_args.kwargs["idempotency_key"] == "s1:refund"

    @patch("stripe.Refund.create")
    @patch("stripe.PaymentIntent.cancel")
    @patch("stripe.PaymentIntent.retrieve")
    def test_refund_of_cancelled_intent_makes_no_call(
        self, mock_retrieve, mock_cancel, mock_refund, stripe_gateway
    ):
        mock_retrieve.return_value = {"id": "pi_123", "status": "canceled", "amount": 7500}

        result = stripe_gateway.refund("pi_123", "s1:refund")

        assert result.method == "cancel"
        assert result.status == "canceled"
        assert result.amount == 7500
        mock_cancel.assert_not_called()
        mock_refund.assert_not_called()

    @patch("stripe.Refund.create")
    @patch("stripe.PaymentIntent.retrieve")
    def test_refund_of_captured_intent_creates_refund(
        self, mock_retrieve, mock_refund, stripe_gateway
    ):
        mock_retrieve.return_value = {"id": "pi_123", "status": "succeeded", "amount": 7500}
        mock_refund.return_value = {"id": "re_1", "status": "succeeded", "amount": 7500}

        result = stripe_gateway.refund("pi_123", "s1:refund")

        assert result.method == "refund"
        assert result.refund_id == "re_1"
        kwargs = mock_refund.call_args.kwargs
        assert kwargs["payment_intent"] == "pi_123"
        assert kwargs["reason"] == "requested_by_customer"
        assert "amount" not in kwargs


class TestConnect:
    @patch("stripe.AccountLink.create")
    @patch("stripe.Account.create")
    def test_create_connected_account(self, mock_account, mock_link, stripe_gateway):
        mock_account.return_value = {"id": "acct_1"}
        mock_link.return_value = {"url": "https://connect.stripe.com/setup/e/acct_1"}

        result = stripe_gateway.create_connected_account(
            mentor_id="m1", email="m@example.com", country="US"
        )

        assert result.account_id == "acct_1"
        assert result.onboarding_url == "https://connect.stripe.com/setup/e/acct_1"
        account_kwargs = mock_account.call_args.kwargs
        assert account_kwargs["type"] == "express"
        assert account_kwargs["capabilities"]["transfers"] == {"requested": True}
        assert account_kwargs["idempotency_key"] == "mentor:m1:connect_account"
        link_kwargs = mock_link.call_args.kwargs
        assert link_kwargs["refresh_url"] == "http://localhost:3000/mentor/onboarding/refresh"
        assert link_kwargs["return_url"] == "http://localhost:3000/mentor/onboarding/complete"

    @patch("stripe.Transfer.create")
    def test_transfer_is_tied_to_source_charge(self, mock_transfer, stripe_gateway):
        mock_transfer.return_value = {"id": "tr_1", "amount": 6000}

        result = stripe_gateway.transfer(
            amount=6000,
            currency="usd",
            destination_account_id="acct_1",
            source_charge_id="ch_1",
            idempotency_key="s1:transfer",
        )

        assert result.id == "tr_1"
        kwargs = mock_transfer.call_args.kwargs
        assert kwargs["destination"] == "acct_1"
        assert kwargs["source_transaction"] == "ch_1"

    @patch("stripe.Account.retrieve")
    def test_account_read_is_retried(self, mock_account, stripe_gateway):
        mock_account.side_effect = [
            stripe.APIConnectionError("timeout"),
            {"id": "acct_1", "charges_enabled": True, "details_submitted": True},
        ]

        status = stripe_gateway.retrieve_account("acct_1")

        assert status.account_id == "acct_1"
        assert status.charges_enabled is True
        assert status.details_submitted is True
        assert status.payouts_enabled is False
        assert mock_account.call_count == 2

    @patch("stripe.Balance.retrieve")
    def test_balance_read_is_retried(self, mock_balance, stripe_gateway):
        mock_balance.side_effect = [
            stripe.APIConnectionError("timeout"),
            {
                "available": [{"amount": 5000, "currency": "usd"}],
                "pending": [{"amount": 700, "currency": "usd"}],
            },
        ]

        balance = stripe_gateway.retrieve_balance("acct_1")

        assert balance.available_for("usd") == 5000
        assert balance.pending[0].amount == 700
        assert mock_balance.call_count == 2
        assert mock_balance.call_args.kwargs["stripe_account"] == "acct_1"

    @patch("stripe.Balance.retrieve")
    def test_balance_read_gives_up(self, mock_balance, stripe_gateway):
        mock_balance.side_effect = stripe.APIConnectionError("timeout")

        with pytest.raises(ExternalServiceException):
            stripe_gateway.retrieve_balance("acct_1")
        assert mock_balance.call_count == 3

    @patch("stripe.Payout.create")
    def test_create_payout(self, mock_payout, stripe_gateway):
        mock_payout.return_value = {
            "id": "po_1",
            "amount": 5000,
            "currency": "usd",
            "status": "pending",
            "arrival_date": 1767225600,
        }

        payout = stripe_gateway.create_payout(
            account_id="acct_1", amount=5000, currency="usd", idempotency_key="payout:1"
        )

        assert payout.id == "po_1"
        assert payout.arrival_date == 1767225600
        assert mock_payout.call_args.kwargs["stripe_account"] == "acct_1"
