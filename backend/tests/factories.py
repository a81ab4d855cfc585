"""Helpers that put users, memberships, and deals straight into the test database."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_token_pair
from app.auth.passwords import hash_password
from app.billing.status import MembershipStatus
from app.models.membership import Membership
from app.models.membership_event import MembershipEvent
from app.models.user import User


async def create_user(
    db_session: AsyncSession,
    *,
    email: str | None = None,
    role: str = "member",
    is_pass_member: bool = False,
    pass_expires_at: datetime | None = None,
    status: MembershipStatus = MembershipStatus.NONE,
    plan: str | None = None,
    stripe_customer_id: str | None = None,
    stripe_subscription_id: str | None = None,
) -> User:
    """Create a user and membership row directly in the DB and commit them."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=email or f"member-{unique}@test.com",
        hashed_password=hash_password("testpass123"),
        name="Test Member",
        is_active=True,
        role=role,
    )
    db_session.add(user)
    await db_session.flush()

    membership = Membership(
        user_id=user.id,
        is_pass_member=is_pass_member,
        pass_expires_at=pass_expires_at,
        current_period_end=pass_expires_at,
        status=status,
        plan=plan,
        stripe_customer_id=stripe_customer_id,
        stripe_subscription_id=stripe_subscription_id,
    )
    db_session.add(membership)
    await db_session.commit()
    await db_session.refresh(user)
    return user


def auth_headers_for(user_id: uuid.UUID) -> dict[str, str]:
    tokens = create_token_pair(str(user_id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


async def load_membership(db_session: AsyncSession, user_id: uuid.UUID) -> Membership:
    """Re-read a membership from the database, discarding any stale in-session state."""
    result = await db_session.execute(
        select(Membership)
        .where(Membership.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def load_events(db_session: AsyncSession, user_id: uuid.UUID) -> list[MembershipEvent]:
    result = await db_session.execute(
        select(MembershipEvent).where(MembershipEvent.user_id == user_id).order_by(MembershipEvent.created_at)
    )
    return list(result.scalars().all())
