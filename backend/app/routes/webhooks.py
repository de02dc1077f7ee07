# backend/app/routes/webhooks.py
"""
Stripe webhook endpoint.

Handles:
    - payment_intent.succeeded
    - payment_intent.payment_failed
    - payment_intent.canceled
    - account.updated

Anything else is acknowledged with status ``ignored``. A non-2xx response
makes Stripe redeliver the event, so only failures worth retrying (bad
signature, processor errors, a transition already running) return one.
"""

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ..api.dependencies.services import get_webhook_reconciler
from ..core.exceptions import DomainException
from ..schemas.payment_schemas import WebhookResponse
from ..services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("/webhook", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
) -> WebhookResponse:
    """
    Verify and apply a Stripe event.

    Returns:
        The reconciliation outcome for the event

    Raises:
        HTTPException: 400 for a missing/invalid signature or payload
    """
    # Signature verification needs the exact bytes Stripe signed
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        outcome = await run_in_threadpool(reconciler.handle, payload, signature)
    except DomainException as exc:
        handle_domain_exception(exc)

    logger.info(f"Stripe webhook {outcome.event_type}: {outcome.status} ({outcome.action})")
    return WebhookResponse(
        status=outcome.status,
        event_type=outcome.event_type,
        action=outcome.action,
    )
