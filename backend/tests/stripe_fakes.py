"""In-memory stand-ins for Stripe objects and the Stripe gateway.

The fake gateway subclasses the real one so webhook signature verification
runs the real ``construct_event`` code path; only network lookups are faked.
"""

import hashlib
import hmac
import json
import time
import uuid
from types import SimpleNamespace

from stripe import StripeClient

from app.billing.exceptions import ProviderUnavailableError
from app.billing.stripe_client import StripeGateway

WEBHOOK_SECRET = "whsec_test_secret"

# 2030-01-01 00:00:00 UTC
FUTURE_PERIOD_END = 1893456000


class _StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects).

    Stripe API 2025-08-27 (basil) changed subscription.items to require
    bracket notation to avoid collision with Python dict .items().
    """

    def __getitem__(self, key: str):
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None


def make_stripe_sub(
    sub_id: str = "sub_test_123",
    customer: str = "cus_test_123",
    status: str = "active",
    period_end=FUTURE_PERIOD_END,
    cancel_at_period_end: bool = False,
    price_id: str = "price_unconfigured",
    interval: str | None = "month",
    period_end_on_item: bool = True,
) -> _StripeObj:
    """Create a fake Stripe Subscription object.

    By default the period end sits on the first item, as in Stripe API
    2025-08-27 (basil) and later.
    """
    item = _StripeObj(
        price=_StripeObj(id=price_id, recurring=_StripeObj(interval=interval) if interval else None),
    )
    sub = _StripeObj(
        id=sub_id,
        customer=customer,
        status=status,
        cancel_at_period_end=cancel_at_period_end,
        items=_StripeObj(data=[item]),
    )
    if period_end_on_item:
        item.current_period_end = period_end
    else:
        sub.current_period_end = period_end
    return sub


def make_event(event_type: str, data_object: _StripeObj, event_id: str | None = None) -> _StripeObj:
    """Create a fake Stripe Event-like object around a data object."""
    return _StripeObj(
        type=event_type,
        id=event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
        data=_StripeObj(object=data_object),
    )


def event_payload(event_type: str, data_object: dict, event_id: str | None = None) -> bytes:
    """Serialize a webhook body the way Stripe sends it."""
    return json.dumps(
        {
            "id": event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
            "object": "event",
            "type": event_type,
            "data": {"object": data_object},
        }
    ).encode()


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a valid Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


class FakeStripeGateway(StripeGateway):
    """StripeGateway backed by dictionaries instead of the Stripe API."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        super().__init__(StripeClient("sk_test_fake"), webhook_secret=webhook_secret, timeout=5.0)
        self.subscriptions: dict[str, _StripeObj] = {}
        self.customer_subscriptions: dict[str, _StripeObj] = {}
        self.customers_by_email: dict[str, str] = {}
        self.customer_emails: dict[str, str] = {}
        self.checkout_sessions: dict[str, _StripeObj] = {}
        self.failing_subscriptions: set[str] = set()
        self.unavailable = False
        self.calls: list[str] = []
        self.created_checkout_sessions: list[dict] = []

    def add_subscription(self, sub: _StripeObj, email: str | None = None) -> _StripeObj:
        """Register a subscription under its id and customer (and customer e-mail)."""
        self.subscriptions[sub.id] = sub
        self.customer_subscriptions[sub.customer] = sub
        if email:
            self.customers_by_email[email.lower()] = sub.customer
            self.customer_emails[sub.customer] = email
        return sub

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if self.unavailable:
            raise ProviderUnavailableError(f"Stripe {operation} timed out")

    async def retrieve_subscription(self, subscription_id: str):
        self._check("subscription retrieve")
        if subscription_id in self.failing_subscriptions:
            raise ProviderUnavailableError(f"Stripe subscription retrieve failed for {subscription_id}")
        return self.subscriptions.get(subscription_id)

    async def latest_subscription_for_customer(self, customer_id: str):
        self._check("subscription list")
        return self.customer_subscriptions.get(customer_id)

    async def find_customer_id_by_email(self, email: str):
        self._check("customer list")
        return self.customers_by_email.get(email.lower())

    async def retrieve_customer_email(self, customer_id: str):
        self._check("customer retrieve")
        return self.customer_emails.get(customer_id)

    async def retrieve_checkout_session(self, session_id: str):
        self._check("checkout session retrieve")
        return self.checkout_sessions.get(session_id)

    async def create_customer(self, email: str, name: str, user_id: str):
        self._check("customer create")
        customer_id = f"cus_{uuid.uuid4().hex[:12]}"
        self.customer_emails[customer_id] = email
        return _StripeObj(id=customer_id, email=email, name=name, metadata={"app_user_id": user_id})

    async def create_checkout_session(self, customer_id, price_id, user_id, success_url, cancel_url):
        self._check("checkout session create")
        params = {
            "customer": customer_id,
            "price_id": price_id,
            "client_reference_id": user_id,
            "metadata": {"app_user_id": user_id},
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        self.created_checkout_sessions.append(params)
        session_id = f"cs_test_{uuid.uuid4().hex[:12]}"
        return _StripeObj(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    async def create_portal_session(self, customer_id: str, return_url: str):
        self._check("portal session create")
        return _StripeObj(url=f"https://billing.stripe.test/p/{customer_id}", return_url=return_url)
