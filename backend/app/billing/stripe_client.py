"""Async Stripe API wrapper for Rise Local.

Every call that leaves the process is bounded by ``settings.stripe_timeout_seconds``;
timeouts and Stripe API errors surface as :class:`ProviderUnavailableError`.
"""

import asyncio
import logging
from collections.abc import Awaitable
from functools import lru_cache
from typing import TypeVar

import stripe
from stripe import StripeClient

from app.billing.exceptions import ProviderUnavailableError, WebhookRejectedError
from app.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_resource_missing(exc: stripe.StripeError) -> bool:
    return isinstance(exc, stripe.InvalidRequestError) and getattr(exc, "code", None) == "resource_missing"


class StripeGateway:
    """The subset of the Stripe API the membership subsystem relies on."""

    def __init__(self, client: StripeClient, webhook_secret: str, timeout: float) -> None:
        self._client = client
        self._webhook_secret = webhook_secret
        self._timeout = timeout

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Stripe %s timed out after %.1fs", operation, self._timeout)
            raise ProviderUnavailableError(f"Stripe {operation} timed out") from e
        except stripe.StripeError as e:
            logger.warning("Stripe %s failed: %s", operation, e)
            raise ProviderUnavailableError(f"Stripe {operation} failed: {e}") from e

    # --- Webhooks ---

    def construct_event(self, payload: bytes, sig_header: str | None) -> stripe.Event:
        """Verify the signature and construct the event (synchronous)."""
        if not self._webhook_secret:
            raise WebhookRejectedError("Webhook secret not configured")
        if not sig_header:
            raise WebhookRejectedError("Missing Stripe-Signature header")
        try:
            return self._client.construct_event(payload, sig_header, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookRejectedError("Invalid signature") from e
        except ValueError as e:
            raise WebhookRejectedError("Invalid payload") from e

    # --- Lookups ---

    async def retrieve_subscription(self, subscription_id: str) -> stripe.Subscription | None:
        """Retrieve a subscription, or None if Stripe does not know the ID."""
        try:
            return await self._call(
                "subscription retrieve",
                self._client.v1.subscriptions.retrieve_async(subscription_id),
            )
        except ProviderUnavailableError as e:
            if isinstance(e.__cause__, stripe.StripeError) and _is_resource_missing(e.__cause__):
                logger.info("Stripe subscription %s does not exist", subscription_id)
                return None
            raise

    async def latest_subscription_for_customer(self, customer_id: str) -> stripe.Subscription | None:
        """Most recently created subscription of a customer, in any status."""
        result = await self._call(
            "subscription list",
            self._client.v1.subscriptions.list_async(
                params={"customer": customer_id, "status": "all", "limit": 1}
            ),
        )
        return result.data[0] if result.data else None

    async def find_customer_id_by_email(self, email: str) -> str | None:
        """Most recent Stripe customer with this e-mail address."""
        result = await self._call(
            "customer list",
            self._client.v1.customers.list_async(params={"email": email, "limit": 1}),
        )
        return result.data[0].id if result.data else None

    async def retrieve_customer_email(self, customer_id: str) -> str | None:
        """E-mail on a Stripe customer, or None if the customer is gone."""
        try:
            customer = await self._call(
                "customer retrieve",
                self._client.v1.customers.retrieve_async(customer_id),
            )
        except ProviderUnavailableError as e:
            if isinstance(e.__cause__, stripe.StripeError) and _is_resource_missing(e.__cause__):
                return None
            raise
        return getattr(customer, "email", None)

    async def retrieve_checkout_session(self, session_id: str) -> stripe.checkout.Session | None:
        """Retrieve a Checkout Session with its subscription and customer expanded."""
        try:
            return await self._call(
                "checkout session retrieve",
                self._client.v1.checkout.sessions.retrieve_async(
                    session_id, params={"expand": ["subscription", "customer"]}
                ),
            )
        except ProviderUnavailableError as e:
            if isinstance(e.__cause__, stripe.StripeError) and _is_resource_missing(e.__cause__):
                logger.info("Stripe checkout session %s does not exist", session_id)
                return None
            raise

    # --- Checkout & portal ---

    async def create_customer(self, email: str, name: str, user_id: str) -> stripe.Customer:
        """Create a Stripe customer linked to a Rise Local user."""
        logger.info("Creating Stripe customer for user %s (%s)", user_id, email)
        customer = await self._call(
            "customer create",
            self._client.v1.customers.create_async(
                params={
                    "email": email,
                    "name": name,
                    "metadata": {"app_user_id": user_id},
                }
            ),
        )
        logger.info("Created Stripe customer %s for user %s", customer.id, user_id)
        return customer

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """Create a subscription Checkout Session that carries the local user id."""
        logger.info("Creating checkout session for customer %s, price %s", customer_id, price_id)
        return await self._call(
            "checkout session create",
            self._client.v1.checkout.sessions.create_async(
                params={
                    "mode": "subscription",
                    "customer": customer_id,
                    "client_reference_id": user_id,
                    "metadata": {"app_user_id": user_id},
                    "subscription_data": {"metadata": {"app_user_id": user_id}},
                    "line_items": [{"price": price_id, "quantity": 1}],
                    "success_url": success_url,
                    "cancel_url": cancel_url,
                }
            ),
        )

    async def create_portal_session(self, customer_id: str, return_url: str) -> stripe.billing_portal.Session:
        """Create a Stripe Customer Portal session for subscription management."""
        logger.info("Creating portal session for customer %s", customer_id)
        return await self._call(
            "portal session create",
            self._client.v1.billing_portal.sessions.create_async(
                params={
                    "customer": customer_id,
                    "return_url": return_url,
                }
            ),
        )


def get_stripe_client() -> StripeClient:
    """Create a StripeClient instance with async HTTP support."""
    return StripeClient(
        settings.stripe_secret_key,
        http_client=stripe.HTTPXClient(timeout=settings.stripe_timeout_seconds),
    )


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    """Process-wide gateway, built on first use and shared afterwards.

    Used as a FastAPI dependency; tests override it with a fake.
    """
    return StripeGateway(
        get_stripe_client(),
        webhook_secret=settings.stripe_webhook_secret,
        timeout=settings.stripe_timeout_seconds,
    )
