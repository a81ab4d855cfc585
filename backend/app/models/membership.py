"""Membership model — Rise Local Pass entitlement state per user."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.billing.status import MembershipStatus
from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Membership(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks a user's pass entitlement and its link to Stripe.

    Only :class:`app.billing.reconciler.EntitlementReconciler` writes the
    entitlement columns.
    """

    __tablename__ = "memberships"

    # Foreign key: one membership per user (UNIQUE enforces one-to-one)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    # Entitlement
    is_pass_member: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pass_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Stripe identifiers
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    # Plan & status
    status: Mapped[MembershipStatus] = mapped_column(
        Enum(
            MembershipStatus,
            native_enum=False,
            length=32,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=MembershipStatus.NONE,
    )
    plan: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Billing period
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="membership", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def snapshot(self) -> dict:
        """JSON-safe view of the entitlement fields, used for audit records."""
        return {
            "is_pass_member": self.is_pass_member,
            "pass_expires_at": self.pass_expires_at.isoformat() if self.pass_expires_at else None,
            "status": self.status.value if self.status else None,
            "plan": self.plan,
            "stripe_customer_id": self.stripe_customer_id,
            "stripe_subscription_id": self.stripe_subscription_id,
            "current_period_end": self.current_period_end.isoformat() if self.current_period_end else None,
            "cancel_at_period_end": self.cancel_at_period_end,
        }

    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, is_pass_member={self.is_pass_member})>"
        )
