"""Reward availability and redemption endpoints."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.dependencies.tenant import require_staff
from revisit_api.api.errors import raise_for_failure
from revisit_api.db.session import get_session
from revisit_api.models.restaurant import RestaurantStaff
from revisit_api.services.loyalty import LoyaltyFailure, RedemptionEngine
from revisit_api.services.loyalty.results import (
    CashbackRewardInfo,
    FreeProductRewardInfo,
    ProgressiveDiscountRewardInfo,
)


router = APIRouter(prefix="/rewards", tags=["rewards"])


class RewardCheckResponse(BaseModel):
    type: Literal["cashback", "free_product", "progressive_discount", "none"]
    pointsBalance: Optional[int] = None
    availableCredit: Optional[int] = None
    earnRate: Optional[int] = None
    available: Optional[bool] = None
    rewardName: Optional[str] = None
    rewardId: Optional[UUID] = None
    pointsRequired: Optional[int] = None
    discountPct: Optional[float] = None
    rankName: Optional[str] = None


class RedemptionCreateRequest(BaseModel):
    cardNumber: str = Field(..., description="Card number in #0000-0 format")
    rewardType: str = Field(..., description="cashback, free_product or progressive_discount")
    rewardConfigId: Optional[UUID] = Field(None, description="Reward to redeem (required for free_product)")


class RedemptionResponse(BaseModel):
    redemptionId: UUID
    rewardType: str
    newBalance: int
    pointsSpent: int
    creditAmount: Optional[int] = None
    discountPct: Optional[float] = None


@router.get("/check", response_model=RewardCheckResponse, response_model_exclude_none=True)
async def check_reward(
    card_number: str = Query(..., description="Card number in #0000-0 format"),
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> RewardCheckResponse:
    info = await RedemptionEngine(db).check_reward(staff.restaurant_id, card_number)
    if isinstance(info, CashbackRewardInfo):
        return RewardCheckResponse(
            type=info.type,
            pointsBalance=info.points_balance,
            availableCredit=info.available_credit,
            earnRate=info.earn_rate,
        )
    if isinstance(info, FreeProductRewardInfo):
        return RewardCheckResponse(
            type=info.type,
            pointsBalance=info.points_balance,
            available=info.available,
            rewardName=info.reward_name or None,
            rewardId=info.reward_id,
            pointsRequired=info.points_required or None,
        )
    if isinstance(info, ProgressiveDiscountRewardInfo):
        return RewardCheckResponse(type=info.type, discountPct=info.discount_pct, rankName=info.rank_name)
    return RewardCheckResponse(type="none")


@router.post("/redemptions", response_model=RedemptionResponse, summary="Redeem a reward")
async def redeem_reward(
    payload: RedemptionCreateRequest,
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    result = await RedemptionEngine(db).redeem(
        staff.restaurant_id,
        payload.cardNumber,
        payload.rewardType,
        reward_config_id=payload.rewardConfigId,
        staff_id=staff.id,
    )
    if isinstance(result, LoyaltyFailure):
        raise_for_failure(result)
    return RedemptionResponse(
        redemptionId=result.redemption_id,
        rewardType=result.reward_type,
        newBalance=result.new_balance,
        pointsSpent=result.points_spent,
        creditAmount=result.credit_amount,
        discountPct=result.discount_pct,
    )
