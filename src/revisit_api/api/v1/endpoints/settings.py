"""Owner-managed program settings: ranks."""

from __future__ import annotations

from decimal import Decimal
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.dependencies.tenant import require_owner, require_staff
from revisit_api.api.errors import raise_for_failure
from revisit_api.db.session import get_session
from revisit_api.models.restaurant import Rank, RestaurantStaff
from revisit_api.services.loyalty import LoyaltyFailure, RankInput, RankSettingsService


router = APIRouter(prefix="/settings", tags=["settings"])


class RankPayload(BaseModel):
    name: str = Field(..., description="Rank display name")
    minVisits: int = Field(..., description="Visits needed to reach the rank")
    multiplier: Decimal = Field(Decimal("1"), description="Points multiplier (0.1 to 10)")
    discountPct: Decimal = Field(Decimal("0"), description="Progressive discount percentage")


class RanksUpdateRequest(BaseModel):
    ranks: List[RankPayload]


class RankResponse(BaseModel):
    id: UUID
    name: str
    sortOrder: int
    minVisits: int
    multiplier: float
    discountPct: float


def _serialize(rank: Rank) -> RankResponse:
    return RankResponse(
        id=rank.id,
        name=rank.name,
        sortOrder=rank.sort_order,
        minVisits=rank.min_visits,
        multiplier=float(rank.multiplier),
        discountPct=float(rank.discount_pct),
    )


@router.get("/ranks", response_model=List[RankResponse])
async def list_ranks(
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> List[RankResponse]:
    ranks = await RankSettingsService(db).list_ranks(staff.restaurant_id)
    return [_serialize(rank) for rank in ranks]


@router.put("/ranks", response_model=List[RankResponse], summary="Replace all ranks")
async def replace_ranks(
    payload: RanksUpdateRequest,
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> List[RankResponse]:
    result = await RankSettingsService(db).replace_ranks(
        staff.restaurant_id,
        [
            RankInput(
                name=item.name,
                min_visits=item.minVisits,
                multiplier=item.multiplier,
                discount_pct=item.discountPct,
            )
            for item in payload.ranks
        ],
    )
    if isinstance(result, LoyaltyFailure):
        raise_for_failure(result)
    return [_serialize(rank) for rank in result]
