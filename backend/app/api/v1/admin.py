"""Admin API endpoints — membership sync, overrides, bulk repair, and diagnostics.

Admin responses carry raw identifiers and provider error text; end-user
endpoints never do.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_stripe_gateway, require_admin, require_admin_or_operator
from app.auth.dependencies import AdminContext
from app.billing.exceptions import (
    BillingError,
    InvalidOverrideError,
    InvalidProviderDataError,
    ProviderUnavailableError,
    SubscriptionNotFoundError,
    UserResolutionError,
)
from app.billing.ledger import list_webhook_events
from app.billing.reconciler import EntitlementReconciler
from app.billing.stripe_client import StripeGateway
from app.models.admin_audit_log import AdminAuditLog
from app.models.webhook_event import WebhookOutcome
from app.schemas.admin import (
    AdminGrantRequest,
    AdminMembershipResponse,
    AdminRevokeRequest,
    AdminSyncRequest,
    AuditLogResponse,
    BulkRepairItem,
    BulkRepairReport,
    MembershipEventResponse,
    WebhookEventResponse,
)
from app.schemas.membership import EntitlementSnapshot
from app.services import admin_service
from app.services.membership_service import get_user_by_id, list_membership_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])

_ERROR_STATUS: dict[type[BillingError], tuple[int, str]] = {
    UserResolutionError: (status.HTTP_404_NOT_FOUND, "user_not_found"),
    SubscriptionNotFoundError: (status.HTTP_404_NOT_FOUND, "not_found"),
    InvalidOverrideError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_override"),
    InvalidProviderDataError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "invalid_data"),
    ProviderUnavailableError: (status.HTTP_502_BAD_GATEWAY, "provider_unavailable"),
}


def _billing_http_error(exc: BillingError) -> HTTPException:
    for exc_type, (status_code, code) in _ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail={"error": code, "message": str(exc)})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "internal_error", "message": str(exc)},
    )


async def _commit(db: AsyncSession) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        logger.exception("Admin action could not be saved")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": str(e)},
        ) from e


def _membership_response(result: admin_service.AdminResult) -> AdminMembershipResponse:
    return AdminMembershipResponse(
        user_id=result.user.id,
        email=result.user.email,
        before=result.before,
        after=EntitlementSnapshot.model_validate(result.membership),
        strategy=result.strategy,
    )


# ---------------------------------------------------------------------------
# Sync / overrides
# ---------------------------------------------------------------------------


@router.post("/membership/sync", response_model=AdminMembershipResponse)
async def sync_membership(
    body: AdminSyncRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin_or_operator),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AdminMembershipResponse:
    """Pull one user's subscription from Stripe and apply it."""
    reconciler = EntitlementReconciler(db, gateway)
    try:
        result = await admin_service.sync_by_lookup(
            db,
            reconciler,
            admin,
            email=body.email,
            subscription_id=body.subscription_id,
        )
    except BillingError as e:
        logger.warning("Admin sync (%s) failed: %s", admin.actor, e)
        raise _billing_http_error(e) from e
    except SQLAlchemyError as e:
        logger.exception("Admin sync (%s) failed to persist", admin.actor)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "internal_error", "message": str(e)},
        ) from e

    await _commit(db)
    return _membership_response(result)


@router.post("/membership/grant", response_model=AdminMembershipResponse)
async def grant_membership(
    body: AdminGrantRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AdminMembershipResponse:
    """Grant the pass directly (comp, support case). Never consults Stripe."""
    try:
        result = await admin_service.grant_pass(
            db,
            EntitlementReconciler(db, gateway),
            admin,
            user_id=body.user_id,
            email=body.email,
            expires_at=body.expires_at,
            plan=body.plan,
            reason=body.reason,
        )
    except BillingError as e:
        raise _billing_http_error(e) from e

    await _commit(db)
    return _membership_response(result)


@router.post("/membership/revoke", response_model=AdminMembershipResponse)
async def revoke_membership(
    body: AdminRevokeRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AdminMembershipResponse:
    """Revoke the pass directly. Never consults Stripe."""
    try:
        result = await admin_service.revoke_pass(
            db,
            EntitlementReconciler(db, gateway),
            admin,
            user_id=body.user_id,
            email=body.email,
            reason=body.reason,
        )
    except BillingError as e:
        raise _billing_http_error(e) from e

    await _commit(db)
    return _membership_response(result)


@router.post("/membership/bulk-repair", response_model=BulkRepairReport)
async def bulk_repair_memberships(
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> BulkRepairReport:
    """Re-sync every linked but unentitled membership and report per user."""
    outcomes = await admin_service.bulk_repair(db, EntitlementReconciler(db, gateway), admin)
    await _commit(db)

    items = [
        BulkRepairItem(
            user_id=o.user_id,
            stripe_subscription_id=o.stripe_subscription_id,
            result=o.result,
            detail=o.detail,
        )
        for o in outcomes
    ]
    return BulkRepairReport(
        total=len(items),
        synced=sum(1 for i in items if i.result == "synced"),
        skipped=sum(1 for i in items if i.result == "skipped"),
        errors=sum(1 for i in items if i.result == "error"),
        items=items,
    )


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@router.get("/webhook-events", response_model=list[WebhookEventResponse])
async def get_webhook_events(
    outcome: WebhookOutcome | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
) -> list[WebhookEventResponse]:
    """Ledger rows, newest first; filter by ``needs_manual_sync`` to find parked events."""
    events = await list_webhook_events(db, outcome=outcome, limit=limit)
    return [WebhookEventResponse.model_validate(e) for e in events]


@router.get("/users/{user_id}/membership-events", response_model=list[MembershipEventResponse])
async def get_membership_events(
    user_id: uuid.UUID,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
) -> list[MembershipEventResponse]:
    """A user's membership event history, newest first."""
    user = await get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    events = await list_membership_events(db, user_id, limit=limit)
    return [MembershipEventResponse.model_validate(e) for e in events]


@router.get("/audit-logs", response_model=list[AuditLogResponse])
async def get_audit_logs(
    target_user_id: uuid.UUID | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: AdminContext = Depends(require_admin),
) -> list[AuditLogResponse]:
    """Admin audit trail, newest first."""
    query = select(AdminAuditLog).order_by(AdminAuditLog.created_at.desc()).limit(limit)
    if target_user_id is not None:
        query = query.where(AdminAuditLog.target_user_id == target_user_id)
    result = await db.execute(query)
    return [AuditLogResponse.model_validate(row) for row in result.scalars().all()]
