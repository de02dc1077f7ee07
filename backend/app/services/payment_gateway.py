# backend/app/services/payment_gateway.py
"""
Stripe adapter for the session payment lifecycle.

Every call passes the API key explicitly (``api_key=``) so the gateway owns
its credentials; nothing is written to ``stripe.api_key``. Every
``stripe.StripeError`` is re-raised as ExternalServiceException carrying the
processor's error code. Reads (balance, account, intent lookups) are retried
with bounded backoff; mutating calls go out exactly once per idempotency key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import stripe

from ..core.config import Settings
from ..core.exceptions import ExternalServiceException
from ..core.retry import call_with_retry
from .base import BaseService

logger = logging.getLogger(__name__)

R = TypeVar("R")

REFUND_REASON_DEFAULT = "requested_by_customer"
UNCAPTURED_INTENT_STATUSES = frozenset(
    {"requires_capture", "requires_payment_method", "requires_confirmation", "requires_action"}
)


def idempotency_key(session_id: str, action: str) -> str:
    """Processor idempotency key for one lifecycle step of a session."""
    return f"{session_id}:{action}"


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a StripeObject, a plain dict or a test double."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    value = getattr(obj, name, default)
    return default if value is None else value


@dataclass(frozen=True)
class PaymentIntentResult:
    id: str
    status: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None


@dataclass(frozen=True)
class CapturedPayment:
    intent_id: str
    charge_id: Optional[str]
    amount_received: int
    status: str


@dataclass(frozen=True)
class RefundResult:
    intent_id: str
    amount: Optional[int]
    status: str
    # "refund" for captured charges, "cancel" when the hold was released instead
    method: str
    refund_id: Optional[str] = None


@dataclass(frozen=True)
class TransferResult:
    id: str
    amount: int
    destination: str


@dataclass(frozen=True)
class ConnectedAccountResult:
    account_id: str
    onboarding_url: Optional[str]


@dataclass(frozen=True)
class BalanceAmount:
    amount: int
    currency: str


@dataclass(frozen=True)
class AccountBalance:
    available: List[BalanceAmount] = field(default_factory=list)
    pending: List[BalanceAmount] = field(default_factory=list)
    instant_available: List[BalanceAmount] = field(default_factory=list)

    def available_for(self, currency: str) -> int:
        currency = currency.lower()
        return sum(entry.amount for entry in self.available if entry.currency.lower() == currency)


@dataclass(frozen=True)
class AccountStatus:
    account_id: str
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool


@dataclass(frozen=True)
class PayoutResult:
    id: str
    amount: int
    currency: str
    status: str
    arrival_date: Optional[int] = None


class PaymentGateway:
    """Thin, typed facade over the Stripe SDK."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.api_key = settings.stripe_api_key
        self.logger = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _fail(self, operation: str, exc: stripe.StripeError) -> ExternalServiceException:
        processor_code = getattr(exc, "code", None)
        http_status = getattr(exc, "http_status", None)
        message = getattr(exc, "user_message", None) or str(exc) or "Payment processor error"
        self.logger.error(
            f"Stripe error during {operation}: {str(exc)}",
            extra={"operation": operation, "processor_code": processor_code},
        )
        return ExternalServiceException(
            f"Failed to {operation.replace('_', ' ')}: {message}",
            processor_code=processor_code,
            http_status=http_status,
        )

    def _read(self, operation: str, func: Callable[[], R]) -> R:
        try:
            return call_with_retry(
                func,
                max_attempts=self.settings.read_retry_attempts,
                backoff_seconds=self.settings.read_retry_backoff_seconds,
                retry_on=(stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError),
                operation=operation,
            )
        except stripe.StripeError as e:
            raise self._fail(operation, e) from e

    # ------------------------------------------------------------------ #
    # Payment intents
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_authorize")
    def authorize(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """Create a manual-capture PaymentIntent holding ``amount`` on the mentee's card."""
        try:
            pi = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                capture_method="manual",
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise self._fail("authorize_payment", e) from e

        return PaymentIntentResult(
            id=_field(pi, "id"),
            status=_field(pi, "status", "requires_payment_method"),
            client_secret=_field(pi, "client_secret"),
            amount=_field(pi, "amount", amount),
        )

    @BaseService.measure_operation("stripe_capture")
    def capture(self, intent_id: str, idempotency_key: str) -> CapturedPayment:
        try:
            pi = stripe.PaymentIntent.capture(
                intent_id, api_key=self.api_key, idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            raise self._fail("capture_payment", e) from e

        charge = _field(pi, "latest_charge")
        # latest_charge is an id unless the caller expanded it
        charge_id = charge if charge is None or isinstance(charge, str) else _field(charge, "id")
        amount_received = _field(pi, "amount_received")
        if amount_received is None:
            amount_received = _field(pi, "amount", 0)
        return CapturedPayment(
            intent_id=intent_id,
            charge_id=charge_id,
            amount_received=int(amount_received),
            status=_field(pi, "status", "succeeded"),
        )

    @BaseService.measure_operation("stripe_retrieve_intent")
    def retrieve_intent(self, intent_id: str) -> Any:
        return self._read(
            "retrieve_payment_intent",
            lambda: stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key),
        )

    @BaseService.measure_operation("stripe_cancel_authorization")
    def cancel_authorization(
        self,
        intent_id: str,
        idempotency_key: str,
        cancellation_reason: str = "abandoned",
    ) -> PaymentIntentResult:
        """Release an uncaptured hold (void)."""
        try:
            pi = stripe.PaymentIntent.cancel(
                intent_id,
                cancellation_reason=cancellation_reason,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise self._fail("cancel_authorization", e) from e
        return PaymentIntentResult(id=intent_id, status=_field(pi, "status", "canceled"))

    @BaseService.measure_operation("stripe_refund")
    def refund(
        self,
        intent_id: str,
        idempotency_key: str,
        amount: Optional[int] = None,
        reason: str = REFUND_REASON_DEFAULT,
    ) -> RefundResult:
        """
        Return the mentee's money for ``intent_id``.

        An uncaptured intent is cancelled, which releases the full hold; a
        captured one gets a Refund (partial when ``amount`` is given).
        An intent that is already cancelled needs no processor call.
        """
        pi = self.retrieve_intent(intent_id)
        intent_status = _field(pi, "status")
        if intent_status == "canceled":
            # The hold was already released, e.g. by an earlier attempt with this key
            return RefundResult(
                intent_id=intent_id,
                amount=_field(pi, "amount", amount),
                status="canceled",
                method="cancel",
            )
        if intent_status in UNCAPTURED_INTENT_STATUSES:
            cancelled = self.cancel_authorization(intent_id, idempotency_key, reason)
            return RefundResult(
                intent_id=intent_id,
                amount=_field(pi, "amount", amount),
                status=cancelled.status,
                method="cancel",
            )

        params: Dict[str, Any] = {"payment_intent": intent_id, "reason": reason}
        if amount is not None:
            params["amount"] = amount
        try:
            refund = stripe.Refund.create(
                **params, api_key=self.api_key, idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            raise self._fail("refund_payment", e) from e
        return RefundResult(
            intent_id=intent_id,
            amount=_field(refund, "amount", amount),
            status=_field(refund, "status", "succeeded"),
            method="refund",
            refund_id=_field(refund, "id"),
        )

    # ------------------------------------------------------------------ #
    # Connect
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_transfer")
    def transfer(
        self,
        amount: int,
        currency: str,
        destination_account_id: str,
        source_charge_id: Optional[str],
        idempotency_key: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> TransferResult:
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "destination": destination_account_id,
            "metadata": metadata or {},
        }
        if source_charge_id:
            params["source_transaction"] = source_charge_id
        try:
            transfer = stripe.Transfer.create(
                **params, api_key=self.api_key, idempotency_key=idempotency_key
            )
        except stripe.StripeError as e:
            raise self._fail("transfer_funds", e) from e
        return TransferResult(
            id=_field(transfer, "id"),
            amount=int(_field(transfer, "amount", amount)),
            destination=destination_account_id,
        )

    @BaseService.measure_operation("stripe_create_connected_account")
    def create_connected_account(
        self,
        mentor_id: str,
        email: Optional[str],
        country: Optional[str] = None,
        account_type: str = "express",
        business_type: Optional[str] = None,
    ) -> ConnectedAccountResult:
        """Create a Connect account for a mentor and an onboarding link for it."""
        params: Dict[str, Any] = {
            "type": account_type,
            "country": country or self.settings.stripe_connect_country,
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "metadata": {"mentor_id": mentor_id},
        }
        if email:
            params["email"] = email
        if business_type:
            params["business_type"] = business_type
        try:
            account = stripe.Account.create(
                **params,
                api_key=self.api_key,
                idempotency_key=f"mentor:{mentor_id}:connect_account",
            )
        except stripe.StripeError as e:
            raise self._fail("create_connected_account", e) from e

        account_id = _field(account, "id")
        self.logger.info(f"Created Stripe {account_type} account {account_id} for mentor {mentor_id}")
        return ConnectedAccountResult(
            account_id=account_id,
            onboarding_url=self.create_onboarding_link(account_id),
        )

    @BaseService.measure_operation("stripe_create_onboarding_link")
    def create_onboarding_link(self, account_id: str) -> str:
        base = self.settings.frontend_url.rstrip("/")
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=f"{base}/mentor/onboarding/refresh",
                return_url=f"{base}/mentor/onboarding/complete",
                type="account_onboarding",
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            raise self._fail("create_onboarding_link", e) from e
        url = _field(link, "url")
        return str(url) if url is not None else ""

    @BaseService.measure_operation("stripe_retrieve_account")
    def retrieve_account(self, account_id: str) -> AccountStatus:
        account = self._read(
            "retrieve_account",
            lambda: stripe.Account.retrieve(account_id, api_key=self.api_key),
        )
        return AccountStatus(
            account_id=account_id,
            charges_enabled=bool(_field(account, "charges_enabled", False)),
            payouts_enabled=bool(_field(account, "payouts_enabled", False)),
            details_submitted=bool(_field(account, "details_submitted", False)),
        )

    @BaseService.measure_operation("stripe_retrieve_balance")
    def retrieve_balance(self, account_id: str) -> AccountBalance:
        balance = self._read(
            "retrieve_balance",
            lambda: stripe.Balance.retrieve(api_key=self.api_key, stripe_account=account_id),
        )

        def _amounts(key: str) -> List[BalanceAmount]:
            return [
                BalanceAmount(amount=int(_field(entry, "amount", 0)), currency=str(_field(entry, "currency", "")))
                for entry in (_field(balance, key) or [])
            ]

        return AccountBalance(
            available=_amounts("available"),
            pending=_amounts("pending"),
            instant_available=_amounts("instant_available"),
        )

    @BaseService.measure_operation("stripe_create_payout")
    def create_payout(
        self,
        account_id: str,
        amount: int,
        currency: str,
        idempotency_key: str,
        statement_descriptor: Optional[str] = None,
    ) -> PayoutResult:
        params: Dict[str, Any] = {"amount": amount, "currency": currency.lower()}
        if statement_descriptor:
            params["statement_descriptor"] = statement_descriptor
        try:
            payout = stripe.Payout.create(
                **params,
                stripe_account=account_id,
                api_key=self.api_key,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            raise self._fail("create_payout", e) from e
        return PayoutResult(
            id=_field(payout, "id"),
            amount=int(_field(payout, "amount", amount)),
            currency=str(_field(payout, "currency", currency)),
            status=str(_field(payout, "status", "pending")),
            arrival_date=_field(payout, "arrival_date"),
        )

    # ------------------------------------------------------------------ #
    # Webhooks
    # ------------------------------------------------------------------ #

    def construct_event(self, payload: bytes, signature: str, secret: str) -> Any:
        """Verify a webhook signature; raises stripe.SignatureVerificationError or ValueError."""
        return stripe.Webhook.construct_event(payload, signature, secret)


def configure_stripe_transport(settings: Settings) -> None:
    """
    Apply HTTP client settings for the Stripe SDK.

    Called once by the application factory; the SDK's network retries reuse
    the same idempotency key.
    """
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.stripe_timeout_seconds)
    stripe.max_network_retries = 1
