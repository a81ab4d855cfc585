"""Seed the database with Rise Local demo accounts and deals.

Creates three accounts (a member without a pass, a pass holder, and an
administrator) plus a handful of deals from local vendors, some of them
locked behind the Rise Local Pass.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from app.auth.passwords import hash_password
from app.billing.reconciler import EntitlementReconciler
from app.billing.status import MembershipStatus, MembershipTrigger, next_status
from app.billing.stripe_client import get_stripe_gateway
from app.billing.timestamps import end_of_month
from app.database import async_session_factory, utcnow
from app.models.deal import Deal
from app.models.membership import Membership
from app.models.user import User

# ---------------------------------------------------------------------------
# Seed data definitions
# ---------------------------------------------------------------------------

DEMO_PASSWORD = "demo1234"

DEMO_USERS = [
    {"email": "member@riselocal.example", "name": "Demo Member", "role": "member", "pass": False},
    {"email": "passholder@riselocal.example", "name": "Demo Pass Holder", "role": "member", "pass": True},
    {"email": "admin@riselocal.example", "name": "Demo Admin", "role": "admin", "pass": False},
]

DEALS = [
    {
        "vendor_name": "Corner Bakery",
        "title": "Free coffee with any pastry",
        "description": "Weekday mornings before 10am.",
        "tier": "standard",
        "is_pass_locked": True,
    },
    {
        "vendor_name": "Main St Books",
        "title": "10% off paperbacks",
        "description": "Excludes special orders.",
        "tier": "free",
        "is_pass_locked": False,
    },
    {
        "vendor_name": "Riverside Bikes",
        "title": "Half-price tune-up",
        "description": "One per pass holder per season.",
        "tier": "premium",
        "is_pass_locked": False,
    },
    {
        "vendor_name": "Hilltop Yoga",
        "title": "First class free",
        "description": None,
        "tier": "free",
        "is_pass_locked": False,
    },
    {
        "vendor_name": "Harbor Fish Market",
        "title": "Buy one, get one chowder",
        "description": "Fridays only.",
        "tier": "member",
        "is_pass_locked": True,
    },
]


# ---------------------------------------------------------------------------
# Main seed function
# ---------------------------------------------------------------------------


async def seed() -> None:
    """Populate the database with demo accounts and deals.

    Idempotent: existing demo accounts and deals from the demo vendors are
    deleted and re-created.
    """
    demo_emails = [u["email"] for u in DEMO_USERS]
    demo_vendors = [d["vendor_name"] for d in DEALS]

    async with async_session_factory() as session:
        result = await session.execute(select(User.id).where(User.email.in_(demo_emails)))
        existing_ids = list(result.scalars().all())
        if existing_ids:
            print(f"⚠️  {len(existing_ids)} demo account(s) already exist. Deleting and re-seeding...")
            await session.execute(delete(Membership).where(Membership.user_id.in_(existing_ids)))
            await session.execute(delete(User).where(User.id.in_(existing_ids)))
        await session.execute(delete(Deal).where(Deal.vendor_name.in_(demo_vendors)))
        await session.flush()

        # ------------------------------------------------------------------
        # 1. Accounts, each with an unentitled membership
        # ------------------------------------------------------------------
        reconciler = EntitlementReconciler(session, get_stripe_gateway())
        for data in DEMO_USERS:
            user = User(
                email=data["email"],
                hashed_password=hash_password(DEMO_PASSWORD),
                name=data["name"],
                is_active=True,
                role=data["role"],
            )
            membership = Membership(user=user, status=MembershipStatus.NONE, is_pass_member=False)
            session.add_all([user, membership])
            await session.flush()

            # The pass goes through the reconciler like any admin grant
            if data["pass"]:
                await reconciler.write_entitlement(
                    membership,
                    event_type="admin_grant",
                    status=next_status(membership.status, MembershipTrigger.ADMIN_GRANT),
                    plan="monthly",
                    expires_at=end_of_month(utcnow()),
                    metadata={"admin": "seed", "source": "admin_override"},
                )

            print(f"✅ Created {data['role']}: {user.email}{' (pass holder)' if data['pass'] else ''}")

        # ------------------------------------------------------------------
        # 2. Deals
        # ------------------------------------------------------------------
        for deal_data in DEALS:
            session.add(Deal(**deal_data))
            lock = "🔒" if deal_data["is_pass_locked"] else "  "
            print(f"   {lock} {deal_data['vendor_name']}: {deal_data['title']}")

        await session.commit()

        print()
        print("=" * 60)
        print("📊 Seed Summary")
        print("=" * 60)
        print(f"   Users: {len(DEMO_USERS)} (password: {DEMO_PASSWORD})")
        print(f"   Deals: {len(DEALS)}")
        print("=" * 60)
        print("🎉 Done! You can now log in at /api/v1/auth/login")


if __name__ == "__main__":
    asyncio.run(seed())
