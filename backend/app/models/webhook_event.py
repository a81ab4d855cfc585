"""WebhookEvent model — idempotency ledger for Stripe webhook deliveries."""

import enum
from datetime import datetime

from sqlalchemy import JSON, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UUIDPrimaryKeyMixin, utcnow


class WebhookOutcome(str, enum.Enum):
    """Terminal processing outcome of one Stripe event id."""

    PROCESSED = "processed"
    FAILED = "failed"
    NEEDS_MANUAL_SYNC = "needs_manual_sync"


class WebhookEvent(UUIDPrimaryKeyMixin, Base):
    """Records how each Stripe event id was handled, so it is applied at most once."""

    __tablename__ = "webhook_events"

    stripe_event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    outcome: Mapped[WebhookOutcome] = mapped_column(
        Enum(
            WebhookOutcome,
            native_enum=False,
            length=32,
            values_callable=lambda outcomes: [o.value for o in outcomes],
        ),
        nullable=False,
        index=True,
    )
    detail: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    def __repr__(self) -> str:
        return f"<WebhookEvent({self.stripe_event_id!r}, {self.event_type!r}, outcome={self.outcome})>"
