"""Admin membership tools — manual sync, grant/revoke overrides, and bulk repair.

Every action that changes entitlement writes an AdminAuditLog row with the
before/after snapshot in addition to the membership event the reconciler
appends.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import AdminContext
from app.billing.exceptions import (
    BillingError,
    InvalidOverrideError,
    InvalidProviderDataError,
    SubscriptionNotFoundError,
    UserResolutionError,
)
from app.billing.reconciler import EntitlementReconciler, SubscriptionFacts
from app.billing.resolvers import OrderedResolver
from app.billing.status import MembershipTrigger, next_status
from app.billing.timestamps import end_of_month
from app.database import utcnow
from app.models.admin_audit_log import AdminAuditLog
from app.models.membership import Membership
from app.models.user import User
from app.services.membership_service import (
    get_membership_by_stripe_customer,
    get_membership_by_stripe_subscription,
    get_or_create_membership,
    get_user_by_email,
    get_user_by_id,
    list_unsynced_memberships,
    membership_for_email,
)

logger = logging.getLogger(__name__)


@dataclass
class AdminResult:
    user: User
    membership: Membership
    before: dict
    strategy: str | None = None


@dataclass
class BulkRepairOutcome:
    user_id: uuid.UUID
    stripe_subscription_id: str | None
    result: str  # synced, skipped, error
    detail: str | None = None


async def write_audit_log(
    db: AsyncSession,
    admin: AdminContext,
    action: str,
    target_user_id: uuid.UUID | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> AdminAuditLog:
    """Append one admin audit entry."""
    entry = AdminAuditLog(
        admin_user_id=admin.admin_user_id,
        actor=admin.actor,
        action=action,
        target_user_id=target_user_id,
        before=before,
        after=after,
        reason=reason,
        ip_address=admin.ip_address,
        user_agent=admin.user_agent,
    )
    db.add(entry)
    await db.flush()
    logger.info("Admin audit: %s by %s on user %s", action, admin.actor, target_user_id)
    return entry


async def _target_user(db: AsyncSession, user_id: uuid.UUID | None, email: str | None) -> User:
    user = await get_user_by_id(db, user_id) if user_id else await get_user_by_email(db, email)
    if user is None:
        raise UserResolutionError(f"No user found for {user_id or email}")
    return user


async def grant_pass(
    db: AsyncSession,
    reconciler: EntitlementReconciler,
    admin: AdminContext,
    *,
    user_id: uuid.UUID | None,
    email: str | None,
    expires_at: datetime | None = None,
    plan: str | None = None,
    reason: str | None = None,
) -> AdminResult:
    """Entitle a user directly, bypassing Stripe. Defaults to the end of the current month."""
    now = utcnow()
    if expires_at is not None and expires_at.tzinfo is not None:
        expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
    expires_at = expires_at or end_of_month(now)
    if expires_at <= now:
        raise InvalidOverrideError("expires_at must be in the future")

    user = await _target_user(db, user_id, email)
    membership = await get_or_create_membership(db, user)
    before = membership.snapshot()

    await reconciler.write_entitlement(
        membership,
        event_type="admin_grant",
        status=next_status(membership.status, MembershipTrigger.ADMIN_GRANT),
        plan=plan or membership.plan,
        expires_at=expires_at,
        metadata={"admin": admin.actor, "reason": reason, "source": "admin_override"},
    )
    await write_audit_log(db, admin, "membership.grant", user.id, before, membership.snapshot(), reason)
    return AdminResult(user=user, membership=membership, before=before)


async def revoke_pass(
    db: AsyncSession,
    reconciler: EntitlementReconciler,
    admin: AdminContext,
    *,
    user_id: uuid.UUID | None,
    email: str | None,
    reason: str | None = None,
) -> AdminResult:
    """Remove a user's entitlement directly, bypassing Stripe."""
    user = await _target_user(db, user_id, email)
    membership = await get_or_create_membership(db, user)
    before = membership.snapshot()

    await reconciler.write_entitlement(
        membership,
        event_type="admin_revoke",
        status=next_status(membership.status, MembershipTrigger.ADMIN_REVOKE),
        plan=membership.plan,
        expires_at=None,
        metadata={"admin": admin.actor, "reason": reason, "source": "admin_override"},
    )
    await write_audit_log(db, admin, "membership.revoke", user.id, before, membership.snapshot(), reason)
    return AdminResult(user=user, membership=membership, before=before)


async def sync_by_lookup(
    db: AsyncSession,
    reconciler: EntitlementReconciler,
    admin: AdminContext,
    *,
    email: str | None = None,
    subscription_id: str | None = None,
) -> AdminResult:
    """Pull a subscription from Stripe by e-mail or subscription id and apply it.

    Raises UserResolutionError, SubscriptionNotFoundError,
    InvalidProviderDataError, or ProviderUnavailableError.
    """
    if subscription_id:
        stripe_sub = await reconciler.gateway.retrieve_subscription(subscription_id)
        if stripe_sub is None:
            raise SubscriptionNotFoundError(f"Stripe has no subscription {subscription_id}")
        facts = SubscriptionFacts.from_stripe(stripe_sub)

        async def by_customer_email():
            if not facts.customer_id:
                return None
            customer_email = await reconciler.gateway.retrieve_customer_email(facts.customer_id)
            return await membership_for_email(db, customer_email)

        resolved = await OrderedResolver(
            "admin sync user",
            [
                ("stripe_subscription_id", lambda: get_membership_by_stripe_subscription(db, subscription_id)),
                ("stripe_customer_id", lambda: get_membership_by_stripe_customer(db, facts.customer_id)),
                ("lookup_email", lambda: membership_for_email(db, email)),
                ("customer_email", by_customer_email),
            ],
        ).resolve()
        if resolved is None:
            raise UserResolutionError(
                f"No local user for subscription {subscription_id} (customer {facts.customer_id})"
            )

        membership = resolved.value
        before = membership.snapshot()
        await reconciler.apply_subscription(
            membership,
            facts,
            event_type="admin_sync",
            metadata={"admin": admin.actor, "strategy": resolved.strategy, "lookup": "subscription_id"},
        )
        strategy = resolved.strategy
    else:
        user = await get_user_by_email(db, email)
        if user is None:
            raise UserResolutionError(f"No local user with e-mail {email}")
        membership = await get_or_create_membership(db, user)
        before = membership.snapshot()
        _, found = await reconciler.sync_from_provider(
            membership,
            email=user.email,
            event_type="admin_sync",
            metadata={"admin": admin.actor, "lookup": "email"},
        )
        strategy = found.strategy

    user = await get_user_by_id(db, membership.user_id)
    await write_audit_log(
        db,
        admin,
        "membership.sync",
        membership.user_id,
        before,
        {**membership.snapshot(), "strategy": strategy},
    )
    return AdminResult(user=user, membership=membership, before=before, strategy=strategy)


async def bulk_repair(
    db: AsyncSession,
    reconciler: EntitlementReconciler,
    admin: AdminContext,
) -> list[BulkRepairOutcome]:
    """Re-sync every membership that has a subscription id but no entitlement.

    Each user runs in its own savepoint so one failure never aborts the batch.
    """
    memberships = await list_unsynced_memberships(db)
    logger.info("Bulk repair: %d memberships to check", len(memberships))
    outcomes: list[BulkRepairOutcome] = []

    for membership in memberships:
        user_id = membership.user_id
        subscription_id = membership.stripe_subscription_id
        user = await get_user_by_id(db, user_id)
        try:
            async with db.begin_nested():
                await reconciler.sync_from_provider(
                    membership,
                    email=user.email if user else None,
                    event_type="bulk_repair",
                    metadata={"admin": admin.actor},
                )
        except (SubscriptionNotFoundError, InvalidProviderDataError) as e:
            outcomes.append(BulkRepairOutcome(user_id, subscription_id, "skipped", str(e)))
            continue
        except Exception as e:  # one bad record must not stop the batch
            logger.exception("Bulk repair failed for user %s", user_id)
            detail = str(e) if isinstance(e, BillingError) else repr(e)
            outcomes.append(BulkRepairOutcome(user_id, subscription_id, "error", detail))
            continue

        if membership.is_pass_member:
            outcomes.append(BulkRepairOutcome(user_id, subscription_id, "synced", membership.status.value))
        else:
            outcomes.append(
                BulkRepairOutcome(user_id, subscription_id, "skipped", f"status {membership.status.value}, not entitled")
            )

    summary = {
        result: sum(1 for o in outcomes if o.result == result) for result in ("synced", "skipped", "error")
    }
    await write_audit_log(db, admin, "membership.bulk_repair", None, None, {"total": len(outcomes), **summary})
    logger.info("Bulk repair finished: %s", summary)
    return outcomes

