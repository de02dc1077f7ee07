# backend/app/services/webhook_reconciler.py
"""
Reconcile asynchronous processor events with local payment state.

Each payment event implies a set of acceptable local payment statuses. When
the ledger already satisfies it the event is a no-op; otherwise the matching
lifecycle transition is applied. Unknown event types and intents this
service never created are acknowledged and ignored so the processor does not
keep redelivering them.
"""

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, FrozenSet, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import Settings
from ..core.constants import WEBHOOK_SOURCE_STRIPE
from ..core.exceptions import DomainException, ValidationException
from ..core.session_lock import SessionTransitionLock
from ..models.payment import Payment, PaymentStatus
from ..models.webhook_event import WebhookEvent
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService
from .payment_gateway import PaymentGateway
from .payment_ledger import PaymentLedger
from .session_lifecycle import SessionLifecycleManager
from .webhook_ledger_service import WebhookLedgerService

logger = logging.getLogger(__name__)

IMPLIED_PAYMENT_STATUSES: Dict[str, FrozenSet[str]] = {
    "payment_intent.succeeded": frozenset({PaymentStatus.COMPLETED.value}),
    "payment_intent.payment_failed": frozenset({PaymentStatus.VOIDED.value}),
    # An uncaptured refund is a cancel on the processor side
    "payment_intent.canceled": frozenset(
        {PaymentStatus.VOIDED.value, PaymentStatus.REFUNDED.value}
    ),
}


@dataclass(frozen=True)
class WebhookOutcome:
    # processed | ignored | duplicate | conflict
    status: str
    event_type: str
    event_id: Optional[str] = None
    action: Optional[str] = None
    session_id: Optional[str] = None


class WebhookReconciler(BaseService):
    """Verify, record and apply inbound Stripe events."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        settings: Settings,
        lock: SessionTransitionLock,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.settings = settings
        self.ledger = PaymentLedger(db)
        self.webhook_ledger = WebhookLedgerService(db)
        self.lifecycle = SessionLifecycleManager(db, gateway, settings, lock)

    def _parse(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        secret = self.settings.webhook_secret
        if secret:
            if not signature:
                self.logger.warning("Missing Stripe signature header")
                raise ValidationException("Missing stripe-signature header", code="MISSING_SIGNATURE")
            try:
                self.gateway.construct_event(payload, signature, secret)
            except (ValueError, stripe.SignatureVerificationError) as exc:
                self.logger.warning(f"Invalid Stripe webhook signature: {str(exc)}")
                raise ValidationException("Invalid webhook signature", code="INVALID_SIGNATURE")
        else:
            self.logger.warning("Webhook secret not configured; accepting unverified event")

        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD")
        if not isinstance(event, dict):
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD")
        data = event.get("data") or {}
        if not isinstance(data, dict) or not isinstance(data.get("object") or {}, dict):
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD")
        return event

    @BaseService.measure_operation("handle_webhook")
    def handle(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        event = self._parse(payload, signature)
        event_type = str(event.get("type") or "unknown")
        event_id = event.get("id")

        with self.transaction():
            record = self.webhook_ledger.log_received(
                source=WEBHOOK_SOURCE_STRIPE,
                event_type=event_type,
                payload=event,
                event_id=event_id,
            )
        if self.webhook_ledger.is_settled(record):
            self.logger.info(f"Duplicate webhook {event_id} ({event_type}) already {record.status}")
            prometheus_metrics.record_webhook_event(event_type, "duplicate")
            return WebhookOutcome(status="duplicate", event_type=event_type, event_id=event_id)

        obj = (event.get("data") or {}).get("object") or {}
        try:
            if event_type in IMPLIED_PAYMENT_STATUSES:
                outcome = self._reconcile_payment(record, event_type, obj)
            elif event_type == "account.updated":
                outcome = self._sync_account(record, obj)
            else:
                self.logger.info(f"Unhandled webhook event type: {event_type}")
                outcome = self._finish(record, "ignored", action="unhandled_type")
        except DomainException as exc:
            self.logger.error(
                f"Webhook {event_id} ({event_type}) failed: {exc.message}",
                extra={"event_id": event_id, "event_type": event_type, "code": exc.code},
            )
            with self.transaction():
                self.webhook_ledger.mark_failed(record, error=exc.message)
            prometheus_metrics.record_webhook_event(event_type, "failed")
            raise

        prometheus_metrics.record_webhook_event(event_type, outcome.status)
        return outcome

    def _finish(
        self,
        record: WebhookEvent,
        status: str,
        action: Optional[str] = None,
        session_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> WebhookOutcome:
        with self.transaction():
            if status == "conflict":
                self.webhook_ledger.mark_failed(record, error=action or "conflict")
            else:
                self.webhook_ledger.mark_processed(
                    record,
                    status=status,
                    related_entity_type=entity_type or ("session" if session_id else None),
                    related_entity_id=entity_id or session_id,
                )
        return WebhookOutcome(
            status=status,
            event_type=record.event_type,
            event_id=record.event_id,
            action=action,
            session_id=session_id,
        )

    def _reconcile_payment(
        self, record: WebhookEvent, event_type: str, intent: Dict[str, Any]
    ) -> WebhookOutcome:
        intent_id = intent.get("id")
        payment: Optional[Payment] = self.ledger.get_by_intent(intent_id) if intent_id else None
        if payment is None:
            self.logger.info(f"Ignoring {event_type} for unknown payment intent {intent_id}")
            return self._finish(record, "ignored", action="unknown_intent")

        implied = IMPLIED_PAYMENT_STATUSES[event_type]
        session_id = payment.session_id
        if payment.status in implied:
            return self._finish(record, "processed", action="already_satisfied", session_id=session_id)

        if payment.status != PaymentStatus.AUTHORIZED.value:
            self.logger.error(
                "reconciliation_conflict",
                extra={
                    "event_id": record.event_id,
                    "event_type": event_type,
                    "session_id": session_id,
                    "local_status": payment.status,
                    "implied": sorted(implied),
                },
            )
            return self._finish(
                record,
                "conflict",
                action=f"local payment is {payment.status}",
                session_id=session_id,
            )

        if event_type == "payment_intent.succeeded":
            charge = intent.get("latest_charge")
            charge_id = charge.get("id") if isinstance(charge, dict) else charge
            self.lifecycle.settle_captured(session_id, charge_id=charge_id)
            action = "settled_capture"
        elif event_type == "payment_intent.payment_failed":
            self.lifecycle.expire_authorization(session_id, cancel_remote=True, reason="payment_failed")
            action = "voided_failed_payment"
        else:
            self.lifecycle.expire_authorization(
                session_id, cancel_remote=False, reason="authorization_canceled"
            )
            action = "voided_canceled_authorization"

        self.logger.info(
            "webhook_reconciled",
            extra={
                "event_id": record.event_id,
                "event_type": event_type,
                "session_id": session_id,
                "action": action,
            },
        )
        return self._finish(record, "processed", action=action, session_id=session_id)

    def _sync_account(self, record: WebhookEvent, account: Dict[str, Any]) -> WebhookOutcome:
        account_id = account.get("id")
        synced = None
        if account_id:
            synced = self.lifecycle.payouts.sync_account_status(
                external_account_id=account_id,
                charges_enabled=bool(account.get("charges_enabled")),
                details_submitted=bool(account.get("details_submitted")),
                payouts_enabled=bool(account.get("payouts_enabled")),
            )
        if synced is None:
            self.logger.info(f"Ignoring account.updated for unknown account {account_id}")
            return self._finish(record, "ignored", action="unknown_account")
        return self._finish(
            record,
            "processed",
            action="account_synced",
            entity_type="mentor_payout_account",
            entity_id=synced.id,
        )
