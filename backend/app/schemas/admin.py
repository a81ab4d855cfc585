"""Pydantic v2 request/response schemas for admin membership tools."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from app.models.webhook_event import WebhookOutcome
from app.schemas.membership import EntitlementSnapshot


class AdminSyncRequest(BaseModel):
    """Sync one user's membership from Stripe by e-mail or subscription id."""

    email: EmailStr | None = None
    subscription_id: str | None = None

    @model_validator(mode="after")
    def _require_lookup_key(self) -> "AdminSyncRequest":
        if not self.email and not self.subscription_id:
            raise ValueError("Provide either email or subscription_id")
        return self


class AdminTargetRequest(BaseModel):
    """Identify the user an override applies to."""

    user_id: uuid.UUID | None = None
    email: EmailStr | None = None
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def _require_target(self) -> "AdminTargetRequest":
        if self.user_id is None and not self.email:
            raise ValueError("Provide either user_id or email")
        return self


class AdminGrantRequest(AdminTargetRequest):
    """Grant the pass without consulting Stripe."""

    expires_at: datetime | None = None  # defaults to end of current month
    plan: str | None = None


class AdminRevokeRequest(AdminTargetRequest):
    """Revoke the pass without consulting Stripe."""


class AdminMembershipResponse(BaseModel):
    """Result of an admin action on one user."""

    user_id: uuid.UUID
    email: str
    before: dict
    after: EntitlementSnapshot
    strategy: str | None = None


class BulkRepairItem(BaseModel):
    user_id: uuid.UUID
    stripe_subscription_id: str | None
    result: str  # synced, skipped, error
    detail: str | None = None


class BulkRepairReport(BaseModel):
    """Per-user outcome of a bulk repair run."""

    total: int
    synced: int
    skipped: int
    errors: int
    items: list[BulkRepairItem]


class WebhookEventResponse(BaseModel):
    stripe_event_id: str
    event_type: str
    outcome: WebhookOutcome
    detail: dict
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MembershipEventResponse(BaseModel):
    stripe_event_id: str | None
    event_type: str
    previous_status: str | None
    new_status: str | None
    previous_plan: str | None
    new_plan: str | None
    metadata: dict = Field(validation_alias="event_metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogResponse(BaseModel):
    admin_user_id: uuid.UUID | None
    actor: str
    action: str
    target_user_id: uuid.UUID | None
    before: dict | None
    after: dict | None
    reason: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
