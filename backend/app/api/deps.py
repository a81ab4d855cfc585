"""Shared API dependencies — single import point for all routers.

Re-exports database session, authentication, and Stripe dependencies so that
router modules can import everything they need from one place::

    from app.api.deps import get_db, get_current_active_user
"""

from app.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    get_optional_user,
    require_admin,
    require_admin_or_operator,
)
from app.billing.stripe_client import get_stripe_gateway
from app.database import get_db

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_optional_user",
    "require_admin",
    "require_admin_or_operator",
    "get_stripe_gateway",
]
