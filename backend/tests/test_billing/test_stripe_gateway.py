"""Tests for StripeGateway error mapping, with the Stripe client mocked out."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import stripe

from app.billing.exceptions import ProviderUnavailableError, WebhookRejectedError
from app.billing.stripe_client import StripeGateway


def _missing(resource: str) -> stripe.InvalidRequestError:
    return stripe.InvalidRequestError(f"No such {resource}", param="id", code="resource_missing")


@pytest.fixture
def stripe_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway(stripe_client: MagicMock) -> StripeGateway:
    return StripeGateway(stripe_client, webhook_secret="whsec_unit", timeout=0.5)


class TestLookups:
    async def test_missing_subscription_is_none(self, stripe_client, gateway):
        stripe_client.v1.subscriptions.retrieve_async = AsyncMock(side_effect=_missing("subscription"))
        assert await gateway.retrieve_subscription("sub_gone") is None

    async def test_other_invalid_request_is_unavailable(self, stripe_client, gateway):
        stripe_client.v1.subscriptions.retrieve_async = AsyncMock(
            side_effect=stripe.InvalidRequestError("Bad expand", param="expand", code="parameter_invalid")
        )
        with pytest.raises(ProviderUnavailableError):
            await gateway.retrieve_subscription("sub_1")

    async def test_connection_error_is_unavailable(self, stripe_client, gateway):
        stripe_client.v1.customers.list_async = AsyncMock(side_effect=stripe.APIConnectionError("reset by peer"))
        with pytest.raises(ProviderUnavailableError, match="customer list"):
            await gateway.find_customer_id_by_email("a@test.com")

    async def test_timeout_is_unavailable(self, stripe_client, gateway):
        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        stripe_client.v1.subscriptions.list_async = hang
        with pytest.raises(ProviderUnavailableError, match="timed out"):
            await gateway.latest_subscription_for_customer("cus_slow")

    async def test_latest_subscription_empty_list(self, stripe_client, gateway):
        stripe_client.v1.subscriptions.list_async = AsyncMock(return_value=SimpleNamespace(data=[]))
        assert await gateway.latest_subscription_for_customer("cus_new") is None
        params = stripe_client.v1.subscriptions.list_async.call_args.kwargs["params"]
        assert params == {"customer": "cus_new", "status": "all", "limit": 1}

    async def test_customer_email(self, stripe_client, gateway):
        stripe_client.v1.customers.retrieve_async = AsyncMock(return_value=SimpleNamespace(id="cus_1", email="x@test.com"))
        assert await gateway.retrieve_customer_email("cus_1") == "x@test.com"

    async def test_missing_customer_email_is_none(self, stripe_client, gateway):
        stripe_client.v1.customers.retrieve_async = AsyncMock(side_effect=_missing("customer"))
        assert await gateway.retrieve_customer_email("cus_gone") is None


class TestCheckout:
    async def test_session_carries_user_id(self, stripe_client, gateway):
        stripe_client.v1.checkout.sessions.create_async = AsyncMock(return_value=SimpleNamespace(id="cs_1", url="u"))

        await gateway.create_checkout_session("cus_1", "price_1", "user-1", "https://s", "https://c")

        params = stripe_client.v1.checkout.sessions.create_async.call_args.kwargs["params"]
        assert params["client_reference_id"] == "user-1"
        assert params["metadata"] == {"app_user_id": "user-1"}
        assert params["subscription_data"] == {"metadata": {"app_user_id": "user-1"}}
        assert params["line_items"] == [{"price": "price_1", "quantity": 1}]


class TestConstructEvent:
    def test_no_secret(self, stripe_client):
        gateway = StripeGateway(stripe_client, webhook_secret="", timeout=1)
        with pytest.raises(WebhookRejectedError, match="not configured"):
            gateway.construct_event(b"{}", "t=1,v1=x")

    def test_no_header(self, gateway):
        with pytest.raises(WebhookRejectedError, match="Missing"):
            gateway.construct_event(b"{}", None)

    def test_bad_signature(self, stripe_client, gateway):
        stripe_client.construct_event.side_effect = stripe.SignatureVerificationError("nope", "t=1,v1=x")
        with pytest.raises(WebhookRejectedError, match="Invalid signature"):
            gateway.construct_event(b"{}", "t=1,v1=x")

    def test_bad_payload(self, stripe_client, gateway):
        stripe_client.construct_event.side_effect = ValueError("not json")
        with pytest.raises(WebhookRejectedError, match="Invalid payload"):
            gateway.construct_event(b"not json", "t=1,v1=x")
