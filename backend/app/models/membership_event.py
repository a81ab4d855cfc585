"""MembershipEvent model — append-only audit trail of entitlement changes."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, UUIDPrimaryKeyMixin, utcnow


class MembershipEvent(UUIDPrimaryKeyMixin, Base):
    """One row per reconciliation decision. Never updated or deleted."""

    __tablename__ = "membership_events"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stripe_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    previous_plan: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_plan: Mapped[str | None] = mapped_column(String(50), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<MembershipEvent(user_id={self.user_id}, type={self.event_type!r}, "
            f"{self.previous_status}->{self.new_status})>"
        )
