"""Membership status vocabulary and the transition table between statuses.

Stripe reports subscription status as a free-form string. Everything that
enters the local record goes through :func:`status_from_stripe` so that a
status Stripe adds in the future lands on ``UNKNOWN`` (never entitling)
instead of silently falling through string comparisons.
"""

import enum
import logging

logger = logging.getLogger(__name__)


class MembershipStatus(str, enum.Enum):
    """Closed set of statuses a membership record can hold."""

    NONE = "none"
    ACTIVE = "active"
    TRIALING = "trialing"
    CANCELING = "canceling"  # active, but will not renew
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"
    UNKNOWN = "unknown"


class MembershipTrigger(str, enum.Enum):
    """What caused a status change."""

    PROVIDER_SYNC = "provider_sync"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    ADMIN_GRANT = "admin_grant"
    ADMIN_REVOKE = "admin_revoke"


ENTITLING_STATUSES: frozenset[MembershipStatus] = frozenset(
    {MembershipStatus.ACTIVE, MembershipStatus.TRIALING, MembershipStatus.CANCELING}
)

_STRIPE_STATUSES: dict[str, MembershipStatus] = {
    "active": MembershipStatus.ACTIVE,
    "trialing": MembershipStatus.TRIALING,
    "past_due": MembershipStatus.PAST_DUE,
    "canceled": MembershipStatus.CANCELED,
    "incomplete": MembershipStatus.INCOMPLETE,
    "incomplete_expired": MembershipStatus.INCOMPLETE_EXPIRED,
    "unpaid": MembershipStatus.UNPAID,
    "paused": MembershipStatus.PAUSED,
}

# Fixed targets for triggers that do not carry a provider status.
# A trigger missing from a row leaves the status unchanged.
_TRANSITIONS: dict[MembershipTrigger, dict[MembershipStatus, MembershipStatus]] = {
    MembershipTrigger.PAYMENT_FAILED: {
        MembershipStatus.ACTIVE: MembershipStatus.PAST_DUE,
        MembershipStatus.TRIALING: MembershipStatus.PAST_DUE,
        MembershipStatus.CANCELING: MembershipStatus.PAST_DUE,
        MembershipStatus.PAST_DUE: MembershipStatus.PAST_DUE,
        MembershipStatus.INCOMPLETE: MembershipStatus.PAST_DUE,
        MembershipStatus.UNPAID: MembershipStatus.PAST_DUE,
        MembershipStatus.UNKNOWN: MembershipStatus.PAST_DUE,
    },
    MembershipTrigger.SUBSCRIPTION_DELETED: {
        status: MembershipStatus.CANCELED for status in MembershipStatus
    },
    MembershipTrigger.ADMIN_GRANT: {status: MembershipStatus.ACTIVE for status in MembershipStatus},
    MembershipTrigger.ADMIN_REVOKE: {status: MembershipStatus.CANCELED for status in MembershipStatus},
}


def status_from_stripe(stripe_status: str | None, cancel_at_period_end: bool = False) -> MembershipStatus:
    """Map a Stripe subscription status onto the local vocabulary."""
    status = _STRIPE_STATUSES.get(stripe_status or "")
    if status is None:
        logger.warning("Unrecognised Stripe subscription status %r", stripe_status)
        return MembershipStatus.UNKNOWN
    if cancel_at_period_end and status in (MembershipStatus.ACTIVE, MembershipStatus.TRIALING):
        return MembershipStatus.CANCELING
    return status


def next_status(current: MembershipStatus | None, trigger: MembershipTrigger) -> MembershipStatus:
    """Apply a non-provider trigger to the current status."""
    current = current or MembershipStatus.NONE
    return _TRANSITIONS.get(trigger, {}).get(current, current)


def is_entitling(status: MembershipStatus | None) -> bool:
    return status in ENTITLING_STATUSES
