"""Billing exception hierarchy.

Routers translate these into HTTP responses; webhook handlers turn them
into deferred outcomes instead of raising to Stripe.
"""


class BillingError(Exception):
    """Base class for billing and entitlement errors."""


class ProviderUnavailableError(BillingError):
    """Stripe timed out or returned an API error."""


class InvalidProviderDataError(BillingError):
    """Stripe returned data we cannot use, such as an unparseable period end."""


class SubscriptionNotFoundError(BillingError):
    """No Stripe subscription could be located for the user."""


class UserResolutionError(BillingError):
    """No local user matches the Stripe identifiers."""


class WebhookRejectedError(BillingError):
    """The webhook failed transport-level verification (secret, header, or signature)."""


class InvalidOverrideError(BillingError):
    """An admin override asked for something the entitlement rules forbid, such as a past expiry."""
