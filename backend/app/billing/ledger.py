"""Webhook idempotency ledger — at most one terminal record per Stripe event id."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.webhook_event import WebhookEvent, WebhookOutcome

logger = logging.getLogger(__name__)


async def get_webhook_event(db: AsyncSession, stripe_event_id: str) -> WebhookEvent | None:
    """Look up the ledger entry for a Stripe event id."""
    result = await db.execute(
        select(WebhookEvent).where(WebhookEvent.stripe_event_id == stripe_event_id)
    )
    return result.scalar_one_or_none()


async def record_webhook_outcome(
    db: AsyncSession,
    stripe_event_id: str,
    event_type: str,
    outcome: WebhookOutcome,
    detail: dict | None = None,
) -> WebhookEvent:
    """Insert the ledger entry for an event.

    A unique-key conflict means a concurrent delivery of the same event
    already recorded its outcome; that record is kept and returned.
    """
    record = WebhookEvent(
        stripe_event_id=stripe_event_id,
        event_type=event_type,
        outcome=outcome,
        detail=detail or {},
    )
    try:
        async with db.begin_nested():
            db.add(record)
    except IntegrityError:
        logger.info("Webhook event %s already recorded by a concurrent delivery", stripe_event_id)
        existing = await get_webhook_event(db, stripe_event_id)
        if existing is None:
            raise
        return existing

    logger.info("Webhook event %s (%s) recorded as %s", stripe_event_id, event_type, outcome.value)
    return record


async def list_webhook_events(
    db: AsyncSession, outcome: WebhookOutcome | None = None, limit: int = 100
) -> list[WebhookEvent]:
    """Most recent ledger entries, optionally filtered by outcome (admin diagnostics)."""
    query = select(WebhookEvent).order_by(WebhookEvent.created_at.desc()).limit(limit)
    if outcome is not None:
        query = query.where(WebhookEvent.outcome == outcome)
    result = await db.execute(query)
    return list(result.scalars().all())
