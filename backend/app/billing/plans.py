"""Plan definitions — Rise Local Pass pricing tiers."""

from dataclasses import dataclass

from app.config import settings


@dataclass(frozen=True)
class PassPlan:
    """A purchasable Rise Local Pass plan."""

    name: str
    display_name: str
    interval: str  # Stripe recurring interval: "month" or "year"
    price_cents: int  # in cents (e.g., 499 = $4.99)
    stripe_price_id: str | None  # None when not configured


PLANS: dict[str, PassPlan] = {
    "monthly": PassPlan(
        name="monthly",
        display_name="Rise Local Pass — Monthly",
        interval="month",
        price_cents=499,
        stripe_price_id=settings.stripe_monthly_price_id or None,
    ),
    "annual": PassPlan(
        name="annual",
        display_name="Rise Local Pass — Annual",
        interval="year",
        price_cents=4499,
        stripe_price_id=settings.stripe_annual_price_id or None,
    ),
}

VALID_PLAN_NAMES: set[str] = set(PLANS.keys())

_INTERVAL_PLANS: dict[str, str] = {"year": "annual", "month": "monthly"}


def get_plan(plan_name: str | None) -> PassPlan | None:
    """Get a plan by name. Returns None if unknown."""
    return PLANS.get(plan_name or "")


def get_plan_by_price_id(price_id: str | None) -> str | None:
    """Reverse lookup: Stripe price ID -> plan name. Returns None if not found."""
    if not price_id:
        return None
    for plan in PLANS.values():
        if plan.stripe_price_id and plan.stripe_price_id == price_id:
            return plan.name
    return None


def resolve_plan(price_id: str | None, interval: str | None, previous_plan: str | None) -> str | None:
    """Derive the local plan for a Stripe price.

    Configured price IDs win; an unrecognised price falls back to the billing
    interval, and if that is inconclusive the previously stored plan is kept.
    """
    plan = get_plan_by_price_id(price_id)
    if plan is not None:
        return plan
    plan = _INTERVAL_PLANS.get(interval or "")
    if plan is not None:
        return plan
    return previous_plan
