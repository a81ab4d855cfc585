"""Entitlement reconciler — the one place that writes pass entitlement.

Webhooks, user-initiated refreshes, and admin actions all funnel through
:meth:`EntitlementReconciler.write_entitlement`, which derives the
entitlement bit from status and expiry and appends the audit event. No
other code assigns ``Membership.is_pass_member``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.exceptions import InvalidProviderDataError, SubscriptionNotFoundError
from app.billing.plans import resolve_plan
from app.billing.resolvers import OrderedResolver, Resolved
from app.billing.status import (
    MembershipStatus,
    is_entitling,
    status_from_stripe,
)
from app.billing.stripe_client import StripeGateway
from app.billing.timestamps import from_unix_timestamp
from app.database import utcnow
from app.models.membership import Membership
from app.models.membership_event import MembershipEvent

logger = logging.getLogger(__name__)

_UNSET = object()


# ---------------------------------------------------------------------------
# Reading Stripe objects
# ---------------------------------------------------------------------------


def stripe_field(obj, key: str):
    """Read a field from a Stripe object, plain dict, or test double."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def stripe_id(value) -> str | None:
    """Return the ID whether the field is a bare ID or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return stripe_field(value, "id")


def _get_first_item(stripe_sub):
    """Get the first subscription item, using bracket notation to avoid
    collision with Python dict .items() in newer Stripe API versions.
    """
    try:
        sub_items = stripe_sub["items"]
    except (KeyError, TypeError):
        return None
    data = stripe_field(sub_items, "data")
    if data:
        return data[0]
    return None


@dataclass(frozen=True)
class SubscriptionFacts:
    """The fields of a Stripe subscription that entitlement derives from."""

    subscription_id: str | None
    customer_id: str | None
    stripe_status: str | None
    cancel_at_period_end: bool
    price_id: str | None
    interval: str | None
    period_end: datetime | None
    raw_period_end: object

    @classmethod
    def from_stripe(cls, stripe_sub) -> "SubscriptionFacts":
        item = _get_first_item(stripe_sub)
        price = stripe_field(item, "price")
        recurring = stripe_field(price, "recurring")

        # Stripe API 2025-08-27 (basil) moved current_period_end to the item
        raw_period_end = stripe_field(stripe_sub, "current_period_end")
        if raw_period_end is None:
            raw_period_end = stripe_field(item, "current_period_end")

        return cls(
            subscription_id=stripe_field(stripe_sub, "id"),
            customer_id=stripe_id(stripe_field(stripe_sub, "customer")),
            stripe_status=stripe_field(stripe_sub, "status"),
            cancel_at_period_end=bool(stripe_field(stripe_sub, "cancel_at_period_end")),
            price_id=stripe_field(price, "id"),
            interval=stripe_field(recurring, "interval"),
            period_end=from_unix_timestamp(raw_period_end),
            raw_period_end=raw_period_end,
        )

    @property
    def status(self) -> MembershipStatus:
        return status_from_stripe(self.stripe_status, self.cancel_at_period_end)

    def describe(self) -> dict:
        return {
            "subscription_id": self.subscription_id,
            "customer_id": self.customer_id,
            "stripe_status": self.stripe_status,
            "price_id": self.price_id,
            "cancel_at_period_end": self.cancel_at_period_end,
            "raw_period_end": self.raw_period_end if isinstance(self.raw_period_end, (int, float, str)) else None,
        }


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


def derive_entitlement(
    status: MembershipStatus,
    expires_at: datetime | None,
    previous: bool,
    now: datetime,
    *,
    keep_previous: bool = False,
) -> bool:
    """Entitled only with an entitling status and an expiry in the future.

    ``keep_previous`` carries the prior bit over regardless of status; only
    a failed invoice payment asks for that. A missing or past expiry always
    yields False.
    """
    if keep_previous:
        entitled = previous
    else:
        entitled = is_entitling(status)
    return entitled and expires_at is not None and expires_at > now


class EntitlementReconciler:
    """Applies evidence about a user's subscription to their membership record."""

    def __init__(self, db: AsyncSession, gateway: StripeGateway) -> None:
        self.db = db
        self.gateway = gateway

    async def write_entitlement(
        self,
        membership: Membership,
        *,
        event_type: str,
        status: MembershipStatus,
        plan: str | None,
        expires_at: datetime | None,
        subscription_id=_UNSET,
        customer_id=_UNSET,
        cancel_at_period_end: bool | None = None,
        stripe_event_id: str | None = None,
        metadata: dict | None = None,
        keep_previous: bool = False,
    ) -> MembershipEvent:
        """Persist new entitlement state and append exactly one membership event."""
        previous_status = membership.status
        previous_plan = membership.plan
        previous_entitled = membership.is_pass_member
        now = utcnow()

        entitled = derive_entitlement(status, expires_at, previous_entitled, now, keep_previous=keep_previous)
        if is_entitling(status) and not entitled:
            logger.warning(
                "Membership %s: status %s but expiry %s is missing or past; not entitled",
                membership.id,
                status.value,
                expires_at,
            )

        membership.status = status
        membership.plan = plan
        membership.pass_expires_at = expires_at
        membership.current_period_end = expires_at
        membership.is_pass_member = entitled
        if subscription_id is not _UNSET:
            membership.stripe_subscription_id = subscription_id
        if customer_id is not _UNSET and customer_id is not None:
            membership.stripe_customer_id = customer_id
        if cancel_at_period_end is not None:
            membership.cancel_at_period_end = cancel_at_period_end

        event = MembershipEvent(
            user_id=membership.user_id,
            stripe_event_id=stripe_event_id or f"evt_local_{uuid.uuid4().hex}",
            event_type=event_type,
            previous_status=previous_status.value if previous_status else None,
            new_status=status.value,
            previous_plan=previous_plan,
            new_plan=plan,
            event_metadata={
                **(metadata or {}),
                "previous_is_pass_member": previous_entitled,
                "is_pass_member": entitled,
                "pass_expires_at": expires_at.isoformat() if expires_at else None,
            },
        )
        self.db.add(event)
        await self.db.flush()

        logger.info(
            "Membership %s (user %s) %s: %s/%s -> %s/%s, entitled=%s, expires=%s",
            membership.id,
            membership.user_id,
            event_type,
            previous_status.value if previous_status else None,
            previous_plan,
            status.value,
            plan,
            entitled,
            expires_at,
        )
        return event

    async def apply_subscription(
        self,
        membership: Membership,
        facts: SubscriptionFacts,
        *,
        event_type: str,
        stripe_event_id: str | None = None,
        metadata: dict | None = None,
        status: MembershipStatus | None = None,
    ) -> MembershipEvent:
        """Derive status, plan, and expiry from a Stripe subscription and persist them.

        Raises InvalidProviderDataError, without touching the record, when
        the period end cannot be converted.
        """
        if facts.period_end is None:
            raise InvalidProviderDataError(
                f"Subscription {facts.subscription_id} has unusable period end {facts.raw_period_end!r}"
            )

        return await self.write_entitlement(
            membership,
            event_type=event_type,
            status=status or facts.status,
            plan=resolve_plan(facts.price_id, facts.interval, membership.plan),
            expires_at=facts.period_end,
            subscription_id=facts.subscription_id,
            customer_id=facts.customer_id,
            cancel_at_period_end=facts.cancel_at_period_end,
            stripe_event_id=stripe_event_id,
            metadata={**facts.describe(), **(metadata or {})},
        )

    # --- Pulling truth from Stripe ---

    async def _subscription_from_checkout_session(self, session_id: str, membership: Membership):
        session = await self.gateway.retrieve_checkout_session(session_id)
        if session is None:
            return None

        owner = stripe_field(session, "client_reference_id") or stripe_field(
            stripe_field(session, "metadata"), "app_user_id"
        )
        if owner and owner != str(membership.user_id):
            logger.warning(
                "Checkout session %s belongs to user %s, not %s; ignoring it",
                session_id,
                owner,
                membership.user_id,
            )
            return None

        subscription = stripe_field(session, "subscription")
        if subscription is None or isinstance(subscription, str):
            return await self.gateway.retrieve_subscription(subscription) if subscription else None
        return subscription

    async def _latest_for_email(self, email: str | None):
        if not email:
            return None
        customer_id = await self.gateway.find_customer_id_by_email(email)
        if customer_id is None:
            return None
        return await self.gateway.latest_subscription_for_customer(customer_id)

    def subscription_locator(
        self,
        membership: Membership,
        email: str | None,
        checkout_session_id: str | None = None,
    ) -> OrderedResolver:
        """Strategies for finding a user's current Stripe subscription, in priority order."""
        strategies = []
        if checkout_session_id:
            strategies.append(
                ("checkout_session", lambda: self._subscription_from_checkout_session(checkout_session_id, membership))
            )
        if membership.stripe_subscription_id:
            strategies.append(
                ("subscription_id", lambda: self.gateway.retrieve_subscription(membership.stripe_subscription_id))
            )
        if membership.stripe_customer_id:
            strategies.append(
                ("customer_id", lambda: self.gateway.latest_subscription_for_customer(membership.stripe_customer_id))
            )
        if email:
            strategies.append(("email", lambda: self._latest_for_email(email)))
        return OrderedResolver("subscription lookup", strategies)

    async def sync_from_provider(
        self,
        membership: Membership,
        *,
        email: str | None,
        event_type: str,
        checkout_session_id: str | None = None,
        metadata: dict | None = None,
    ) -> tuple[MembershipEvent, Resolved]:
        """Locate the user's subscription at Stripe and apply it.

        Raises SubscriptionNotFoundError or InvalidProviderDataError without
        mutating local state, and ProviderUnavailableError if Stripe fails.
        """
        found = await self.subscription_locator(membership, email, checkout_session_id).resolve()
        if found is None:
            raise SubscriptionNotFoundError(f"No Stripe subscription found for user {membership.user_id}")

        facts = SubscriptionFacts.from_stripe(found.value)
        event = await self.apply_subscription(
            membership,
            facts,
            event_type=event_type,
            metadata={"strategy": found.strategy, **(metadata or {})},
        )
        return event, found
