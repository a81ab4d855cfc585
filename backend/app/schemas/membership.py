"""Pydantic v2 request/response schemas for membership, webhook, and deal-access endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.billing.status import MembershipStatus

# --- Request schemas ---


class CheckoutRequest(BaseModel):
    """Request to create a Stripe Checkout session for a pass plan."""

    plan: str  # "monthly" or "annual"
    success_url: str | None = None
    cancel_url: str | None = None


class PortalRequest(BaseModel):
    """Request to create a Stripe Customer Portal session."""

    return_url: str | None = None


class MembershipRefreshRequest(BaseModel):
    """Ask the server to re-check the caller's subscription at Stripe."""

    checkout_session_id: str | None = None


# --- Response schemas ---


class PlanResponse(BaseModel):
    """Plan details for display."""

    name: str
    display_name: str
    interval: str
    price_cents: int


class PlansListResponse(BaseModel):
    """All available plans."""

    plans: list[PlanResponse]


class EntitlementSnapshot(BaseModel):
    """Entitlement state after a refresh or admin action."""

    is_pass_member: bool
    pass_expires_at: datetime | None
    status: MembershipStatus
    plan: str | None
    stripe_subscription_id: str | None

    model_config = ConfigDict(from_attributes=True)


class MembershipStatusResponse(BaseModel):
    """Membership overview for the authenticated user."""

    plan: str | None
    status: str
    is_pass_member: bool
    cancel_at_period_end: bool
    current_period_end: datetime | None
    pass_expires_at: datetime | None
    next_billing_date: datetime | None
    source: str  # "stripe" or "local"


class CheckoutResponse(BaseModel):
    """Stripe Checkout session URL returned to frontend."""

    checkout_url: str
    session_id: str


class PortalResponse(BaseModel):
    """Stripe Customer Portal URL returned to frontend."""

    portal_url: str


class WebhookResponse(BaseModel):
    """Acknowledgement returned to Stripe."""

    status: str  # processed, already_processed, needs_manual_sync, processing_failed, ignored
    reason: str | None = None


class DealAccessResponse(BaseModel):
    """Whether the caller may redeem a deal, and why."""

    deal_id: uuid.UUID
    is_locked: bool
    requires_membership: bool
    user_has_membership: bool
    reason: str  # public, member_with_pass, locked_no_pass, locked_no_user
