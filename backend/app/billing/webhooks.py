"""Stripe webhook event handlers — reconcile membership state from subscription events.

Each handler returns a typed outcome instead of raising for application-level
problems: anything we cannot safely apply becomes ``Deferred`` and is parked
for an administrator.
"""

import logging

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.outcomes import Deferred, Processed
from app.billing.reconciler import (
    EntitlementReconciler,
    SubscriptionFacts,
    stripe_field,
    stripe_id,
)
from app.billing.resolvers import OrderedResolver
from app.billing.status import MembershipStatus, MembershipTrigger, is_entitling, next_status
from app.models.membership import Membership
from app.services.membership_service import (
    get_membership_by_stripe_customer,
    membership_for_email,
    membership_for_user_id,
)

logger = logging.getLogger(__name__)

# Metadata keys carrying the local user id, newest first
APP_USER_ID_KEY = "app_user_id"
LEGACY_USER_ID_KEY = "user_id"


def checkout_user_resolver(db: AsyncSession, session) -> OrderedResolver[Membership]:
    """Map a completed checkout session to a local membership.

    Order: explicit app metadata, legacy metadata, client_reference_id,
    already-linked Stripe customer, then customer e-mail.
    """
    metadata = stripe_field(session, "metadata")
    customer_id = stripe_id(stripe_field(session, "customer"))
    email = stripe_field(stripe_field(session, "customer_details"), "email") or stripe_field(
        session, "customer_email"
    )

    return OrderedResolver(
        "checkout user",
        [
            ("metadata_app_user_id", lambda: membership_for_user_id(db, stripe_field(metadata, APP_USER_ID_KEY))),
            ("metadata_user_id", lambda: membership_for_user_id(db, stripe_field(metadata, LEGACY_USER_ID_KEY))),
            (
                "client_reference_id",
                lambda: membership_for_user_id(db, stripe_field(session, "client_reference_id")),
            ),
            ("stripe_customer_id", lambda: get_membership_by_stripe_customer(db, customer_id)),
            ("customer_email", lambda: membership_for_email(db, email)),
        ],
    )


def _checkout_candidates(session) -> dict:
    """Identifiers an administrator needs to resolve an unmatched checkout by hand."""
    metadata = stripe_field(session, "metadata")
    return {
        "checkout_session_id": stripe_field(session, "id"),
        "metadata_app_user_id": stripe_field(metadata, APP_USER_ID_KEY),
        "metadata_user_id": stripe_field(metadata, LEGACY_USER_ID_KEY),
        "client_reference_id": stripe_field(session, "client_reference_id"),
        "customer_id": stripe_id(stripe_field(session, "customer")),
        "customer_email": stripe_field(stripe_field(session, "customer_details"), "email")
        or stripe_field(session, "customer_email"),
        "subscription_id": stripe_id(stripe_field(session, "subscription")),
    }


def _invoice_subscription_id(invoice) -> str | None:
    """Subscription of an invoice, across Stripe API versions."""
    subscription_id = stripe_id(stripe_field(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    # Stripe API 2025-03-31 (basil) moved it under parent.subscription_details
    details = stripe_field(stripe_field(invoice, "parent"), "subscription_details")
    return stripe_id(stripe_field(details, "subscription"))


async def handle_checkout_session_completed(
    reconciler: EntitlementReconciler, event: stripe.Event
) -> Processed | Deferred:
    """Handle checkout.session.completed — link and activate a new pass subscription."""
    session = event.data.object
    subscription_ref = stripe_field(session, "subscription")

    if stripe_field(session, "mode") not in (None, "subscription") or not subscription_ref:
        logger.info("Checkout session %s has no subscription (one-time?), skipping", stripe_field(session, "id"))
        return Processed(detail={"skipped": "not_subscription_mode"})

    candidates = _checkout_candidates(session)
    resolved = await checkout_user_resolver(reconciler.db, session).resolve()
    if resolved is None:
        logger.warning("Checkout %s: no local user matched %s", candidates["checkout_session_id"], candidates)
        return Deferred(reason="user_not_resolved", detail=candidates)

    membership = resolved.value
    if isinstance(subscription_ref, str):
        stripe_sub = await reconciler.gateway.retrieve_subscription(subscription_ref)
    else:
        stripe_sub = subscription_ref
    if stripe_sub is None:
        return Deferred(
            reason="subscription_not_found",
            detail={**candidates, "user_id": str(membership.user_id), "strategy": resolved.strategy},
        )

    facts = SubscriptionFacts.from_stripe(stripe_sub)
    if facts.period_end is None:
        logger.warning(
            "Checkout %s: subscription %s has unusable period end %r",
            candidates["checkout_session_id"],
            facts.subscription_id,
            facts.raw_period_end,
        )
        return Deferred(
            reason="invalid_period_end",
            detail={**candidates, **facts.describe(), "user_id": str(membership.user_id)},
        )

    await reconciler.apply_subscription(
        membership,
        facts,
        event_type=event.type,
        stripe_event_id=event.id,
        metadata={"strategy": resolved.strategy, "checkout_session_id": candidates["checkout_session_id"]},
    )
    logger.info(
        "Checkout completed: user %s matched via %s, subscription %s",
        membership.user_id,
        resolved.strategy,
        facts.subscription_id,
    )
    return Processed(detail={"user_id": str(membership.user_id), "strategy": resolved.strategy})


async def handle_subscription_updated(
    reconciler: EntitlementReconciler, event: stripe.Event
) -> Processed | Deferred:
    """Handle customer.subscription.created/updated — sync status, plan, and period."""
    stripe_sub = event.data.object
    facts = SubscriptionFacts.from_stripe(stripe_sub)

    membership = await get_membership_by_stripe_customer(reconciler.db, facts.customer_id)
    if membership is None:
        logger.warning(
            "No local membership for Stripe customer %s (subscription %s)",
            facts.customer_id,
            facts.subscription_id,
        )
        return Deferred(reason="unknown_customer", detail=facts.describe())

    if facts.period_end is None:
        logger.warning(
            "Subscription %s has unusable period end %r; leaving membership %s unchanged",
            facts.subscription_id,
            facts.raw_period_end,
            membership.id,
        )
        return Deferred(
            reason="invalid_period_end",
            detail={**facts.describe(), "user_id": str(membership.user_id)},
        )

    await reconciler.apply_subscription(
        membership,
        facts,
        event_type=event.type,
        stripe_event_id=event.id,
    )
    return Processed(detail={"user_id": str(membership.user_id), "status": facts.status.value})


async def handle_subscription_deleted(
    reconciler: EntitlementReconciler, event: stripe.Event
) -> Processed | Deferred:
    """Handle customer.subscription.deleted — revoke the pass and unlink the subscription."""
    stripe_sub = event.data.object
    subscription_id = stripe_field(stripe_sub, "id")
    customer_id = stripe_id(stripe_field(stripe_sub, "customer"))

    membership = await get_membership_by_stripe_customer(reconciler.db, customer_id)
    if membership is None:
        logger.warning(
            "No local membership for Stripe customer %s (delete of %s)",
            customer_id,
            subscription_id,
        )
        return Deferred(
            reason="unknown_customer",
            detail={"customer_id": customer_id, "subscription_id": subscription_id},
        )

    await reconciler.write_entitlement(
        membership,
        event_type=event.type,
        status=next_status(membership.status, MembershipTrigger.SUBSCRIPTION_DELETED),
        plan=None,
        expires_at=None,
        subscription_id=None,
        cancel_at_period_end=False,
        stripe_event_id=event.id,
        metadata={"subscription_id": subscription_id, "customer_id": customer_id},
    )
    logger.info("Subscription deleted: %s, pass revoked for user %s", subscription_id, membership.user_id)
    return Processed(detail={"user_id": str(membership.user_id)})


async def handle_invoice_paid(reconciler: EntitlementReconciler, event: stripe.Event) -> Processed | Deferred:
    """Handle invoice.paid — re-fetch the subscription and extend the pass."""
    invoice = event.data.object
    customer_id = stripe_id(stripe_field(invoice, "customer"))

    membership = await get_membership_by_stripe_customer(reconciler.db, customer_id)
    if membership is None:
        logger.warning("No local membership for Stripe customer %s (invoice %s)", customer_id, invoice.id)
        return Deferred(reason="unknown_customer", detail={"customer_id": customer_id, "invoice_id": invoice.id})

    subscription_id = _invoice_subscription_id(invoice) or membership.stripe_subscription_id
    if not subscription_id:
        logger.info("Invoice %s has no subscription (one-time), skipping", invoice.id)
        return Processed(detail={"skipped": "no_subscription"})

    # The invoice does not reliably carry the new period end
    stripe_sub = await reconciler.gateway.retrieve_subscription(subscription_id)
    if stripe_sub is None:
        return Deferred(
            reason="subscription_not_found",
            detail={"customer_id": customer_id, "subscription_id": subscription_id, "invoice_id": invoice.id},
        )

    facts = SubscriptionFacts.from_stripe(stripe_sub)
    if facts.period_end is None:
        logger.warning("Invoice %s: subscription %s has unusable period end", invoice.id, subscription_id)
        return Deferred(
            reason="invalid_period_end",
            detail={**facts.describe(), "invoice_id": invoice.id, "user_id": str(membership.user_id)},
        )

    # A paid invoice confirms the subscription even if Stripe has not flipped its status yet
    status = facts.status if is_entitling(facts.status) else MembershipStatus.ACTIVE
    await reconciler.apply_subscription(
        membership,
        facts,
        event_type=event.type,
        stripe_event_id=event.id,
        metadata={"invoice_id": invoice.id},
        status=status,
    )
    logger.info("Invoice paid: subscription %s confirmed for user %s", subscription_id, membership.user_id)
    return Processed(detail={"user_id": str(membership.user_id)})


async def handle_invoice_payment_failed(
    reconciler: EntitlementReconciler, event: stripe.Event
) -> Processed | Deferred:
    """Handle invoice.payment_failed — mark past_due, keep entitlement until it expires."""
    invoice = event.data.object
    customer_id = stripe_id(stripe_field(invoice, "customer"))

    membership = await get_membership_by_stripe_customer(reconciler.db, customer_id)
    if membership is None:
        logger.warning("No local membership for Stripe customer %s (payment failed)", customer_id)
        return Deferred(reason="unknown_customer", detail={"customer_id": customer_id, "invoice_id": invoice.id})

    await reconciler.write_entitlement(
        membership,
        event_type=event.type,
        status=next_status(membership.status, MembershipTrigger.PAYMENT_FAILED),
        plan=membership.plan,
        expires_at=membership.pass_expires_at,
        stripe_event_id=event.id,
        metadata={"invoice_id": invoice.id, "subscription_id": _invoice_subscription_id(invoice)},
        keep_previous=True,
    )
    logger.info("Payment failed: user %s marked %s", membership.user_id, membership.status.value)
    return Processed(detail={"user_id": str(membership.user_id)})


# Map event types to handler functions
EVENT_HANDLERS = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_updated,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
}
