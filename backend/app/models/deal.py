"""Deal model — the subset of a vendor deal the redemption gate needs."""

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Deal(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A deal offered by a local vendor."""

    __tablename__ = "deals"

    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    tier: Mapped[str] = mapped_column(String(50), nullable=False, default="free")  # free, standard, premium, member
    is_pass_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Deal(id={self.id}, title={self.title!r}, tier={self.tier!r})>"
