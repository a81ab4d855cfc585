"""Create the Rise Local Pass product and its prices in Stripe test mode.

Run once inside the backend container:
    python -m app.billing.scripts.create_stripe_products

Outputs price IDs to set in .env:
    STRIPE_MONTHLY_PRICE_ID=price_xxx
    STRIPE_ANNUAL_PRICE_ID=price_xxx
"""

import asyncio

import stripe
from stripe import StripeClient

from app.billing.plans import PLANS
from app.config import settings


async def main() -> None:
    if not settings.stripe_secret_key:
        print("ERROR: STRIPE_SECRET_KEY is not set in .env")
        return

    client = StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(timeout=settings.stripe_timeout_seconds),
    )

    product = await client.v1.products.create_async(
        params={
            "name": "Rise Local Pass",
            "description": "Unlocks member-only deals from local vendors",
        }
    )
    print(f"Created product: {product.name} ({product.id})")

    price_ids: dict[str, str] = {}
    for plan in PLANS.values():
        price = await client.v1.prices.create_async(
            params={
                "product": product.id,
                "unit_amount": plan.price_cents,
                "currency": "usd",
                "recurring": {"interval": plan.interval},
                "nickname": plan.display_name,
            }
        )
        price_ids[plan.name] = price.id
        print(f"  Price: ${plan.price_cents / 100:.2f}/{plan.interval} ({price.id})")

    print("\n--- Add these to your .env ---")
    print(f"STRIPE_MONTHLY_PRICE_ID={price_ids['monthly']}")
    print(f"STRIPE_ANNUAL_PRICE_ID={price_ids['annual']}")


if __name__ == "__main__":
    asyncio.run(main())
