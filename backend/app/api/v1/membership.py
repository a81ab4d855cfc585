"""Membership API endpoints — pass status, user refresh, Stripe Checkout, and Customer Portal."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_active_user, get_db, get_stripe_gateway
from app.billing.exceptions import (
    InvalidProviderDataError,
    ProviderUnavailableError,
    SubscriptionNotFoundError,
)
from app.billing.plans import PLANS, VALID_PLAN_NAMES, get_plan, resolve_plan
from app.billing.reconciler import EntitlementReconciler, SubscriptionFacts
from app.billing.status import MembershipStatus
from app.billing.stripe_client import StripeGateway
from app.config import settings
from app.models.user import User
from app.schemas.membership import (
    CheckoutRequest,
    CheckoutResponse,
    EntitlementSnapshot,
    MembershipRefreshRequest,
    MembershipStatusResponse,
    PlanResponse,
    PlansListResponse,
    PortalRequest,
    PortalResponse,
)
from app.services.membership_service import ensure_stripe_customer, get_or_create_membership

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/membership", tags=["membership"])

_NOT_BILLING = {MembershipStatus.CANCELING, MembershipStatus.CANCELED}


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": code, "message": message})


@router.get("/plans", response_model=PlansListResponse)
async def list_plans() -> PlansListResponse:
    """List available pass plans (public — no auth required)."""
    return PlansListResponse(
        plans=[
            PlanResponse(
                name=p.name,
                display_name=p.display_name,
                interval=p.interval,
                price_cents=p.price_cents,
            )
            for p in PLANS.values()
        ]
    )


@router.get("/status", response_model=MembershipStatusResponse)
async def get_membership_status(
    current_user: User = Depends(get_current_active_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> MembershipStatusResponse:
    """Membership overview. Prefers live Stripe data, falls back to the local record.

    Read-only: nothing found at Stripe is written back here.
    """
    membership = current_user.membership
    if membership is None:
        return MembershipStatusResponse(
            plan=None,
            status=MembershipStatus.NONE.value,
            is_pass_member=False,
            cancel_at_period_end=False,
            current_period_end=None,
            pass_expires_at=None,
            next_billing_date=None,
            source="local",
        )

    if membership.stripe_subscription_id:
        try:
            stripe_sub = await gateway.retrieve_subscription(membership.stripe_subscription_id)
        except ProviderUnavailableError as e:
            logger.info("Live status lookup failed for user %s, using local record: %s", current_user.id, e)
            stripe_sub = None

        if stripe_sub is not None:
            facts = SubscriptionFacts.from_stripe(stripe_sub)
            if facts.period_end is not None:
                live_status = facts.status
                return MembershipStatusResponse(
                    plan=resolve_plan(facts.price_id, facts.interval, membership.plan),
                    status=live_status.value,
                    is_pass_member=membership.is_pass_member,
                    cancel_at_period_end=facts.cancel_at_period_end,
                    current_period_end=facts.period_end,
                    pass_expires_at=membership.pass_expires_at,
                    next_billing_date=_next_billing_date(live_status, facts.period_end),
                    source="stripe",
                )

    return MembershipStatusResponse(
        plan=membership.plan,
        status=membership.status.value,
        is_pass_member=membership.is_pass_member,
        cancel_at_period_end=membership.cancel_at_period_end,
        current_period_end=membership.current_period_end,
        pass_expires_at=membership.pass_expires_at,
        next_billing_date=_next_billing_date(membership.status, membership.current_period_end),
        source="local",
    )


def _next_billing_date(membership_status: MembershipStatus, period_end: datetime | None) -> datetime | None:
    if membership_status in _NOT_BILLING:
        return None
    return period_end


@router.post("/refresh", response_model=EntitlementSnapshot)
async def refresh_membership(
    body: MembershipRefreshRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> EntitlementSnapshot:
    """Re-check the caller's subscription at Stripe, e.g. right after Checkout returns."""
    checkout_session_id = body.checkout_session_id if body else None
    membership = await get_or_create_membership(db, current_user)
    reconciler = EntitlementReconciler(db, gateway)

    try:
        _, found = await reconciler.sync_from_provider(
            membership,
            email=current_user.email,
            event_type="manual_refresh",
            checkout_session_id=checkout_session_id,
        )
        await db.commit()
    except SubscriptionNotFoundError:
        logger.info("Refresh for user %s: no subscription found", current_user.id)
        raise _error(
            status.HTTP_404_NOT_FOUND,
            "not_found",
            "We couldn't find a Rise Local Pass subscription for your account.",
        ) from None
    except InvalidProviderDataError as e:
        logger.warning("Refresh for user %s: %s", current_user.id, e)
        raise _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "invalid_data",
            "Your subscription details are incomplete. Please try again in a few minutes.",
        ) from None
    except ProviderUnavailableError:
        raise _error(
            status.HTTP_502_BAD_GATEWAY,
            "provider_unavailable",
            "Our payment provider is not responding. Please try again shortly.",
        ) from None
    except SQLAlchemyError:
        logger.exception("Refresh for user %s: could not save membership", current_user.id)
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_error",
            "Something went wrong on our side. Please try again.",
        ) from None

    logger.info("Refresh for user %s matched via %s", current_user.id, found.strategy)
    return EntitlementSnapshot.model_validate(membership)


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> CheckoutResponse:
    """Create a Stripe Checkout session for a pass plan."""
    if body.plan not in VALID_PLAN_NAMES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid plan. Choose 'monthly' or 'annual'.",
        )

    plan = get_plan(body.plan)
    if not plan.stripe_price_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe price ID not configured for plan.",
        )

    membership = await get_or_create_membership(db, current_user)

    success_url = (
        body.success_url
        or f"{settings.frontend_url}/membership?session_id={{CHECKOUT_SESSION_ID}}"
    )
    cancel_url = body.cancel_url or f"{settings.frontend_url}/pass"

    try:
        customer_id = await ensure_stripe_customer(db, gateway, current_user, membership)
        session = await gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=plan.stripe_price_id,
            user_id=str(current_user.id),
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except ProviderUnavailableError as e:
        logger.error("Stripe checkout error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment provider unavailable. Please try again shortly.",
        ) from e

    await db.commit()

    return CheckoutResponse(
        checkout_url=session.url,
        session_id=session.id,
    )


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    body: PortalRequest,
    current_user: User = Depends(get_current_active_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> PortalResponse:
    """Create a Stripe Customer Portal session for subscription management."""
    membership = current_user.membership

    if membership is None or not membership.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Stripe customer found. Subscribe first.",
        )

    return_url = body.return_url or f"{settings.frontend_url}/membership"

    try:
        session = await gateway.create_portal_session(
            customer_id=membership.stripe_customer_id,
            return_url=return_url,
        )
    except ProviderUnavailableError as e:
        logger.error("Stripe portal error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment provider unavailable. Please try again shortly.",
        ) from e

    return PortalResponse(portal_url=session.url)
