"""Deal access endpoint — exposes the redemption gate decision for one deal."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_optional_user
from app.billing.gate import deal_access_info
from app.models.deal import Deal
from app.models.user import User
from app.schemas.membership import DealAccessResponse

router = APIRouter(prefix="/api/v1/deals", tags=["deals"])


@router.get("/{deal_id}/access", response_model=DealAccessResponse)
async def get_deal_access(
    deal_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> DealAccessResponse:
    """Whether the caller (possibly anonymous) may redeem this deal."""
    result = await db.execute(select(Deal).where(Deal.id == deal_id, Deal.is_active.is_(True)))
    deal = result.scalar_one_or_none()
    if deal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Deal not found")

    membership = current_user.membership if current_user is not None else None
    info = deal_access_info(membership, deal, has_user=current_user is not None)
    return DealAccessResponse(
        deal_id=deal.id,
        is_locked=info.is_locked,
        requires_membership=info.requires_membership,
        user_has_membership=info.user_has_membership,
        reason=info.reason,
    )
