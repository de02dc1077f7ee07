# backend/app/services/payout_manager.py
"""
Mentor payout accounts, balances and payouts.

A mentor has at most one Stripe Connect account (unique on mentor_id).
Provisioning is idempotent: concurrent callers converge on the single
persisted account.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.constants import PAYOUT_STATEMENT_DESCRIPTOR
from ..core.exceptions import (
    InsufficientBalanceException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..core.ulid_helper import generate_ulid
from ..models.mentor import Mentor
from ..models.payment import MentorPayoutAccount, OnboardingStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .payment_gateway import AccountBalance, PaymentGateway, PayoutResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectedAccountInfo:
    account: MentorPayoutAccount
    onboarding_url: Optional[str]
    created: bool


class PayoutManager(BaseService):
    """Provision mentor Connect accounts and move their settled funds to the bank."""

    def __init__(self, db: Session, gateway: PaymentGateway, settings: Settings):
        super().__init__(db)
        self.gateway = gateway
        self.settings = settings
        self.repository = RepositoryFactory.create_payout_account_repository(db)
        self.mentor_repository = RepositoryFactory.create_base_repository(db, Mentor)

    def _require_account(self, mentor_id: str) -> MentorPayoutAccount:
        account = self.repository.get_by_mentor_id(mentor_id)
        if account is None:
            raise NotFoundException(
                f"Mentor {mentor_id} has no payout account",
                code="PAYOUT_ACCOUNT_NOT_FOUND",
                details={"mentor_id": mentor_id},
            )
        return account

    @BaseService.measure_operation("ensure_connected_account")
    def ensure_connected_account(
        self,
        mentor_id: str,
        email: Optional[str] = None,
        country: Optional[str] = None,
        account_type: str = "express",
        business_type: Optional[str] = None,
    ) -> ConnectedAccountInfo:
        """
        Return the mentor's Connect account, creating it on first use.

        An existing account that has not finished onboarding is re-read from
        Stripe and, if still incomplete, gets a fresh onboarding link (links
        are single-use and expire).
        """
        existing = self.repository.get_by_mentor_id(mentor_id)
        if existing is not None:
            return self._existing_info(existing)

        if email is None or country is None:
            mentor = self.mentor_repository.get_by_id(mentor_id)
            if mentor is not None:
                email = email or mentor.email
                country = country or mentor.country
        if not email:
            raise ValidationException("Email is required", details={"mentor_id": mentor_id})

        created = self.gateway.create_connected_account(
            mentor_id=mentor_id,
            email=email,
            country=country,
            account_type=account_type,
            business_type=business_type,
        )

        try:
            with self.transaction():
                account = self.repository.create(
                    mentor_id=mentor_id,
                    external_account_id=created.account_id,
                    onboarding_status=OnboardingStatus.PENDING.value,
                    payouts_enabled=False,
                )
        except RepositoryException as exc:
            # Race-safe fallback: another request persisted the mentor's account first
            if isinstance(exc.__cause__, IntegrityError):
                winner = self.repository.get_by_mentor_id(mentor_id)
                if winner is not None:
                    self.logger.warning(
                        f"Race detected creating payout account for mentor {mentor_id}; "
                        f"keeping {winner.external_account_id}, discarding {created.account_id}"
                    )
                    return self._existing_info(winner)
            raise

        self.log_operation(
            "ensure_connected_account",
            mentor_id=mentor_id,
            external_account_id=created.account_id,
        )
        return ConnectedAccountInfo(
            account=account, onboarding_url=created.onboarding_url, created=True
        )

    def _existing_info(self, account: MentorPayoutAccount) -> ConnectedAccountInfo:
        onboarding_url = None
        if not account.onboarding_completed:
            # Onboarding may have finished without the account.updated event reaching us
            status = self.gateway.retrieve_account(account.external_account_id)
            account = (
                self.sync_account_status(
                    external_account_id=account.external_account_id,
                    charges_enabled=status.charges_enabled,
                    details_submitted=status.details_submitted,
                    payouts_enabled=status.payouts_enabled,
                )
                or account
            )
        if not account.onboarding_completed:
            onboarding_url = self.gateway.create_onboarding_link(account.external_account_id)
        return ConnectedAccountInfo(account=account, onboarding_url=onboarding_url, created=False)

    @BaseService.measure_operation("get_balance")
    def get_balance(self, mentor_id: str) -> AccountBalance:
        account = self._require_account(mentor_id)
        return self.gateway.retrieve_balance(account.external_account_id)

    @BaseService.measure_operation("request_payout")
    def request_payout(
        self,
        mentor_id: str,
        amount: int,
        currency: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PayoutResult:
        """
        Pay ``amount`` out of the mentor's available balance.

        Raises InsufficientBalanceException (and creates nothing) when the
        available balance in ``currency`` is smaller than ``amount``.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationException("Amount must be a positive integer", details={"amount": amount})
        currency = (currency or self.settings.stripe_currency).lower()
        account = self._require_account(mentor_id)

        balance = self.gateway.retrieve_balance(account.external_account_id)
        available = balance.available_for(currency)
        if amount > available:
            prometheus_metrics.inc_payout_request("insufficient_balance")
            self.logger.info(
                f"Payout of {amount} {currency} rejected for mentor {mentor_id}: available {available}"
            )
            raise InsufficientBalanceException(requested=amount, available=available, currency=currency)

        try:
            payout = self.gateway.create_payout(
                account_id=account.external_account_id,
                amount=amount,
                currency=currency,
                idempotency_key=idempotency_key or f"payout:{mentor_id}:{generate_ulid()}",
                statement_descriptor=PAYOUT_STATEMENT_DESCRIPTOR,
            )
        except Exception:
            prometheus_metrics.inc_payout_request("error")
            raise

        prometheus_metrics.inc_payout_request("success")
        self.log_operation(
            "request_payout", mentor_id=mentor_id, payout_id=payout.id, amount=amount
        )
        return payout

    def get_transfer_destination(self, mentor_id: str) -> str:
        return self._require_account(mentor_id).external_account_id

    @BaseService.measure_operation("sync_account_status")
    def sync_account_status(
        self,
        external_account_id: str,
        charges_enabled: bool,
        details_submitted: bool,
        payouts_enabled: bool,
    ) -> Optional[MentorPayoutAccount]:
        """Mirror processor account flags locally. Unknown accounts return None."""
        account = self.repository.get_by_external_id(external_account_id)
        if account is None:
            return None
        with self.transaction():
            if charges_enabled and details_submitted:
                account.onboarding_status = OnboardingStatus.COMPLETE.value
            account.payouts_enabled = bool(payouts_enabled)
            self.repository.flush()
        self.log_operation(
            "sync_account_status",
            external_account_id=external_account_id,
            onboarding_status=account.onboarding_status,
            payouts_enabled=account.payouts_enabled,
        )
        return account
