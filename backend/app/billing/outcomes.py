"""Typed results of webhook processing.

Only ``Rejected`` (the delivery failed verification) becomes an HTTP error.
``Deferred`` means automated reconciliation could not safely proceed; the
event is parked in the ledger as ``needs_manual_sync`` and Stripe still
gets a 2xx so it stops retrying.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Processed:
    detail: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Deferred:
    reason: str
    detail: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    reason: str


WebhookOutcomeResult = Processed | Deferred | Rejected
