"""Optional Stripe integration tests — hit real Stripe test mode API.

These tests are auto-skipped when STRIPE_SECRET_KEY is not set (e.g., in CI).
"""

import os

import pytest

from app.billing.exceptions import WebhookRejectedError
from app.billing.stripe_client import StripeGateway, get_stripe_client
from app.config import settings

SKIP_REASON = "STRIPE_SECRET_KEY not set — skipping real Stripe integration tests"
pytestmark = [
    pytest.mark.asyncio,
    pytest.mark.skipif(not os.getenv("STRIPE_SECRET_KEY"), reason=SKIP_REASON),
]


@pytest.fixture
def gateway() -> StripeGateway:
    return StripeGateway(
        get_stripe_client(),
        webhook_secret=settings.stripe_webhook_secret or "whsec_integration",
        timeout=settings.stripe_timeout_seconds,
    )


class TestStripeIntegration:
    """Real Stripe API tests — only run when STRIPE_SECRET_KEY is available."""

    async def test_create_real_customer(self, gateway: StripeGateway):
        customer = await gateway.create_customer(
            email="integration-test@example.com",
            name="Integration Test User",
            user_id="test-integration-user-id",
        )
        assert customer.id.startswith("cus_")
        assert customer.metadata.get("app_user_id") == "test-integration-user-id"
        assert await gateway.retrieve_customer_email(customer.id) == "integration-test@example.com"

    async def test_create_checkout_session_returns_url(self, gateway: StripeGateway):
        if not settings.stripe_monthly_price_id:
            pytest.skip("STRIPE_MONTHLY_PRICE_ID not configured")

        customer = await gateway.create_customer(
            email="checkout-test@example.com",
            name="Checkout Test User",
            user_id="test-checkout-user-id",
        )
        session = await gateway.create_checkout_session(
            customer_id=customer.id,
            price_id=settings.stripe_monthly_price_id,
            user_id="test-checkout-user-id",
            success_url="https://example.com/success",
            cancel_url="https://example.com/cancel",
        )
        assert session.id.startswith("cs_")
        assert "checkout.stripe.com" in session.url

        fetched = await gateway.retrieve_checkout_session(session.id)
        assert fetched.client_reference_id == "test-checkout-user-id"

    def test_construct_event_invalid_signature(self, gateway: StripeGateway):
        with pytest.raises(WebhookRejectedError):
            gateway.construct_event(b'{"type": "test"}', "t=12345,v1=invalid_signature")

    async def test_retrieve_nonexistent_subscription(self, gateway: StripeGateway):
        assert await gateway.retrieve_subscription("sub_nonexistent_12345") is None

    async def test_unknown_email_has_no_customer(self, gateway: StripeGateway):
        assert await gateway.find_customer_id_by_email("nobody-here-12345@example.com") is None
