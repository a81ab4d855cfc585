"""SQLAlchemy models for Rise Local.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from app.models.admin_audit_log import AdminAuditLog
from app.models.deal import Deal
from app.models.membership import Membership
from app.models.membership_event import MembershipEvent
from app.models.user import User
from app.models.webhook_event import WebhookEvent, WebhookOutcome

__all__ = [
    "AdminAuditLog",
    "Deal",
    "Membership",
    "MembershipEvent",
    "User",
    "WebhookEvent",
    "WebhookOutcome",
]
