"""Redemption gate — decides whether a user may redeem a deal.

Reads only the local membership record; never calls Stripe. The stored
``is_pass_member`` bit is re-checked against ``pass_expires_at`` on every
decision so a lapsed pass stops working the moment it expires.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from app.database import utcnow
from app.models.deal import Deal
from app.models.membership import Membership

logger = logging.getLogger(__name__)

MEMBER_ONLY_TIERS = frozenset({"premium", "member"})


@dataclass(frozen=True)
class DealAccessInfo:
    is_locked: bool
    requires_membership: bool
    user_has_membership: bool
    reason: str  # public, member_with_pass, locked_no_pass, locked_no_user


def has_rise_local_pass(membership: Membership | None, now: datetime | None = None) -> bool:
    """True only for a flagged membership whose expiry is present and in the future."""
    if membership is None or membership.is_pass_member is not True:
        return False
    expires_at = membership.pass_expires_at
    if not isinstance(expires_at, datetime):
        logger.debug("Membership %s has no usable pass_expires_at", membership.id)
        return False
    return expires_at > (now or utcnow())


def is_member_only_deal(deal: Deal) -> bool:
    """Pass-locked deals, plus legacy deals whose tier implies membership."""
    return deal.is_pass_locked is True or (deal.tier or "").lower() in MEMBER_ONLY_TIERS


def can_redeem(membership: Membership | None, deal: Deal, now: datetime | None = None) -> bool:
    """Permit/deny decision consumed by redemption flows."""
    return not is_member_only_deal(deal) or has_rise_local_pass(membership, now)


def deal_access_info(
    membership: Membership | None,
    deal: Deal,
    has_user: bool,
    now: datetime | None = None,
) -> DealAccessInfo:
    """Access decision with the reason, for display."""
    requires_membership = is_member_only_deal(deal)
    user_has_membership = has_rise_local_pass(membership, now)

    if not requires_membership:
        return DealAccessInfo(False, False, user_has_membership, "public")
    if user_has_membership:
        return DealAccessInfo(False, True, True, "member_with_pass")
    return DealAccessInfo(True, True, False, "locked_no_pass" if has_user else "locked_no_user")
