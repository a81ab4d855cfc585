"""Stripe webhook endpoint — receives and processes Stripe events.

Once the signature checks out, Stripe always gets a 200: problems on our
side are recorded in the idempotency ledger (``needs_manual_sync`` or
``failed``) rather than fed back into Stripe's retry loop.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import (
    InvalidProviderDataError,
    ProviderUnavailableError,
    WebhookRejectedError,
)
from app.billing.ledger import get_webhook_event, record_webhook_outcome
from app.billing.outcomes import Deferred, Processed, Rejected, WebhookOutcomeResult
from app.billing.reconciler import EntitlementReconciler
from app.billing.stripe_client import StripeGateway, get_stripe_gateway
from app.billing.webhooks import EVENT_HANDLERS
from app.database import get_db
from app.models.webhook_event import WebhookOutcome
from app.schemas.membership import WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])


def _to_response(outcome: WebhookOutcomeResult) -> WebhookResponse:
    """Map a processing outcome to the HTTP answer Stripe sees."""
    if isinstance(outcome, Rejected):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=outcome.reason)
    if isinstance(outcome, Deferred):
        return WebhookResponse(status=WebhookOutcome.NEEDS_MANUAL_SYNC.value, reason=outcome.reason)
    return WebhookResponse(status=WebhookOutcome.PROCESSED.value)


async def _park(db: AsyncSession, event_id: str, event_type: str, outcome: WebhookOutcome, detail: dict) -> None:
    """Discard partial writes, then record a non-processed outcome in the ledger (best effort)."""
    await db.rollback()
    try:
        await record_webhook_outcome(db, event_id, event_type, outcome, detail)
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Could not record %s for webhook event %s", outcome.value, event_id)
        await db.rollback()


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> WebhookResponse:
    """Receive and process Stripe webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    # 2. Verify signature
    try:
        event = gateway.construct_event(payload, sig_header)
    except WebhookRejectedError as e:
        logger.warning("Webhook rejected: %s", e)
        return _to_response(Rejected(reason=str(e)))

    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug("Unhandled webhook event type: %s", event.type)
        return WebhookResponse(status="ignored")

    # 3. Idempotency check; a failed lookup must not drop a legitimate event
    try:
        existing = await get_webhook_event(db, event.id)
    except SQLAlchemyError:
        logger.exception("Idempotency lookup failed for %s; processing anyway", event.id)
        await db.rollback()
        existing = None

    if existing is not None:
        logger.info("Webhook event %s already handled (%s)", event.id, existing.outcome.value)
        return WebhookResponse(status="already_processed", reason=existing.outcome.value)

    logger.info("Processing webhook event: %s (id=%s)", event.type, event.id)

    # 4. Dispatch to handler
    reconciler = EntitlementReconciler(db, gateway)
    try:
        outcome = await handler(reconciler, event)
    except ProviderUnavailableError as e:
        outcome = Deferred(reason="provider_unavailable", detail={"error": str(e)})
    except InvalidProviderDataError as e:
        outcome = Deferred(reason="invalid_provider_data", detail={"error": str(e)})
    except SQLAlchemyError as e:
        logger.exception("Persistence failed while applying webhook event %s", event.id)
        outcome = Deferred(reason="persistence_failed", detail={"error": str(e)})
    except Exception as e:
        logger.exception("Error processing webhook event %s", event.id)
        await _park(db, event.id, event.type, WebhookOutcome.FAILED, {"error": repr(e)})
        return WebhookResponse(status="processing_failed")

    # 5. Record outcome
    if isinstance(outcome, Deferred):
        logger.warning("Webhook event %s needs manual sync: %s", event.id, outcome.reason)
        await _park(
            db,
            event.id,
            event.type,
            WebhookOutcome.NEEDS_MANUAL_SYNC,
            {"reason": outcome.reason, **outcome.detail},
        )
        return _to_response(outcome)

    try:
        await record_webhook_outcome(db, event.id, event.type, WebhookOutcome.PROCESSED, outcome.detail)
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception("Could not commit webhook event %s", event.id)
        deferred = Deferred(reason="persistence_failed", detail={"error": str(e)})
        await _park(db, event.id, event.type, WebhookOutcome.NEEDS_MANUAL_SYNC, {"reason": deferred.reason, **deferred.detail})
        return _to_response(deferred)

    return _to_response(outcome if isinstance(outcome, Processed) else Processed())
