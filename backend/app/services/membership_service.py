"""Membership service — lookups and linkage for membership records."""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.billing.stripe_client import StripeGateway
from app.models.membership import Membership
from app.models.membership_event import MembershipEvent
from app.models.user import User

logger = logging.getLogger(__name__)


async def get_or_create_membership(db: AsyncSession, user: User) -> Membership:
    """Get the user's membership, creating an unentitled one if missing."""
    result = await db.execute(select(Membership).where(Membership.user_id == user.id))
    membership = result.scalar_one_or_none()

    if membership is not None:
        return membership

    logger.info("Creating membership record for user %s", user.id)
    # Assigning the relationship keeps user.membership in sync for the rest of the request
    membership = Membership(user=user, is_pass_member=False)
    db.add(membership)
    await db.flush()
    return membership


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID | str | None) -> User | None:
    """Look up a user by id; malformed ids resolve to None."""
    if not user_id:
        return None
    try:
        parsed = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
    except ValueError:
        logger.debug("Ignoring malformed user id %r", user_id)
        return None
    result = await db.execute(select(User).where(User.id == parsed))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str | None) -> User | None:
    """Case-insensitive e-mail lookup."""
    if not email:
        return None
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalars().first()


async def get_membership_by_stripe_customer(
    db: AsyncSession, stripe_customer_id: str | None
) -> Membership | None:
    """Look up membership by Stripe customer ID (used by webhooks)."""
    if not stripe_customer_id:
        return None
    result = await db.execute(
        select(Membership)
        .where(Membership.stripe_customer_id == stripe_customer_id)
        .order_by(Membership.updated_at.desc())
    )
    return result.scalars().first()


async def get_membership_by_stripe_subscription(
    db: AsyncSession, stripe_subscription_id: str | None
) -> Membership | None:
    """Look up membership by Stripe subscription ID."""
    if not stripe_subscription_id:
        return None
    result = await db.execute(
        select(Membership)
        .where(Membership.stripe_subscription_id == stripe_subscription_id)
        .order_by(Membership.updated_at.desc())
    )
    return result.scalars().first()


async def membership_for_user_id(db: AsyncSession, user_id: uuid.UUID | str | None) -> Membership | None:
    user = await get_user_by_id(db, user_id)
    return await get_or_create_membership(db, user) if user is not None else None


async def membership_for_email(db: AsyncSession, email: str | None) -> Membership | None:
    user = await get_user_by_email(db, email)
    return await get_or_create_membership(db, user) if user is not None else None


async def ensure_stripe_customer(
    db: AsyncSession, gateway: StripeGateway, user: User, membership: Membership
) -> str:
    """Ensure the user has a Stripe customer ID. Create one if missing."""
    if membership.stripe_customer_id:
        return membership.stripe_customer_id

    customer = await gateway.create_customer(
        email=user.email,
        name=user.name or user.email,
        user_id=str(user.id),
    )
    membership.stripe_customer_id = customer.id
    await db.flush()
    logger.info("Linked Stripe customer %s to user %s", customer.id, user.id)
    return customer.id


async def list_unsynced_memberships(db: AsyncSession) -> list[Membership]:
    """Memberships linked to a Stripe subscription but not currently entitled."""
    result = await db.execute(
        select(Membership)
        .where(
            Membership.stripe_subscription_id.is_not(None),
            Membership.is_pass_member.is_(False),
        )
        .order_by(Membership.created_at)
    )
    return list(result.scalars().all())


async def list_membership_events(db: AsyncSession, user_id: uuid.UUID, limit: int = 100) -> list[MembershipEvent]:
    """A user's membership events, newest first."""
    result = await db.execute(
        select(MembershipEvent)
        .where(MembershipEvent.user_id == user_id)
        .order_by(MembershipEvent.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
