"""Point-of-sale endpoints used by staff at the counter."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.dependencies.tenant import require_staff
from revisit_api.api.errors import raise_for_failure
from revisit_api.db.session import get_session
from revisit_api.models.restaurant import RestaurantStaff
from revisit_api.services.loyalty import LoyaltyFailure, SaleTransactionEngine


router = APIRouter(prefix="/pos", tags=["pos"])


class SaleLookupRequest(BaseModel):
    cardNumber: str = Field(..., description="Card number in #0000-0 format")
    amount: Decimal | str = Field(..., description="Sale amount in major currency units")


class SaleLookupResponse(BaseModel):
    customerName: str
    currentRank: str
    pointsBalance: int
    pointsPreview: int
    cardNumber: str
    amountCents: int
    staffId: UUID


class SaleCreateRequest(BaseModel):
    cardNumber: str = Field(..., description="Card number in #0000-0 format")
    amountCents: int = Field(..., description="Sale amount in cents")


class SaleResponse(BaseModel):
    saleId: UUID
    pointsEarned: int
    newBalance: int
    customerName: str
    rankPromoted: bool
    newRankName: str


@router.post("/lookup", response_model=SaleLookupResponse, summary="Preview points for a sale")
async def preview_sale(
    payload: SaleLookupRequest,
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> SaleLookupResponse:
    result = await SaleTransactionEngine(db).lookup(staff.restaurant_id, staff.id, payload.cardNumber, payload.amount)
    if isinstance(result, LoyaltyFailure):
        raise_for_failure(result)
    return SaleLookupResponse(
        customerName=result.customer_name,
        currentRank=result.current_rank,
        pointsBalance=result.points_balance,
        pointsPreview=result.points_preview,
        cardNumber=result.card_number,
        amountCents=result.amount_cents,
        staffId=result.staff_id,
    )


@router.post("/sales", response_model=SaleResponse, summary="Register a sale and credit points")
async def register_sale(
    payload: SaleCreateRequest,
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> SaleResponse:
    result = await SaleTransactionEngine(db).register_sale(
        staff.restaurant_id,
        payload.cardNumber,
        payload.amountCents,
        staff.id,
    )
    if isinstance(result, LoyaltyFailure):
        raise_for_failure(result)
    return SaleResponse(
        saleId=result.sale_id,
        pointsEarned=result.points_earned,
        newBalance=result.new_balance,
        customerName=result.customer_name,
        rankPromoted=result.rank_promoted,
        newRankName=result.new_rank_name,
    )
