"""Customer enrollment, public card lookups and ledger audits."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.dependencies.tenant import require_staff, require_tenant
from revisit_api.api.errors import failure_detail, raise_for_failure
from revisit_api.db.session import get_session
from revisit_api.domain import card_number as card_codec
from revisit_api.models.restaurant import RestaurantStaff
from revisit_api.services.loyalty import CustomerRegistry, LoyaltyFailure, LoyaltyRepository, PointLedger
from revisit_api.services.loyalty.results import LoyaltyErrorCode


router = APIRouter(tags=["customers"])


class CustomerRegisterRequest(BaseModel):
    name: str = Field(..., description="Customer display name")
    phone: str = Field(..., description="Phone number; formatting characters are ignored")


class CustomerRegisterResponse(BaseModel):
    cardNumber: str
    customerName: str
    rankName: str
    isExisting: bool


class RankResponse(BaseModel):
    id: Optional[UUID]
    name: str
    multiplier: float
    discountPct: float


class LedgerEntryResponse(BaseModel):
    sequence: int
    pointsDelta: int
    balanceAfter: int
    type: str
    note: Optional[str]
    createdAt: Optional[datetime]


class CardResponse(BaseModel):
    cardNumber: str
    customerName: str
    pointsBalance: int
    visitCount: int
    totalSpendCents: int
    rank: RankResponse
    nextRankName: Optional[str]
    visitsToNextRank: Optional[int]
    restaurantName: str
    programName: Optional[str]
    rewardType: str
    transactions: List[LedgerEntryResponse]


class LedgerAuditResponse(BaseModel):
    customerId: UUID
    consistent: bool
    entries: int
    replayedBalance: int
    storedBalance: int
    firstMismatchSequence: Optional[int]


def _normalize_card(card_number: str) -> str:
    """Accept card numbers with or without the leading ``#`` (it is awkward in URLs)."""

    value = card_number.strip()
    return value if value.startswith("#") else f"#{value}"


@router.post(
    "/customers/register",
    response_model=CustomerRegisterResponse,
    summary="Enroll a customer (idempotent per phone)",
)
async def register_customer(
    payload: CustomerRegisterRequest,
    tenant_id: UUID = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> CustomerRegisterResponse:
    result = await CustomerRegistry(db).register(tenant_id, payload.name, payload.phone)
    if isinstance(result, LoyaltyFailure):
        raise_for_failure(result)
    return CustomerRegisterResponse(
        cardNumber=result.card_number,
        customerName=result.customer_name,
        rankName=result.rank_name,
        isExisting=result.is_existing,
    )


@router.get("/cards/{card_number}", response_model=CardResponse, summary="Public card balance")
async def get_card(
    card_number: str,
    tenant_id: UUID = Depends(require_tenant),
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    snapshot = await CustomerRegistry(db).get_card(tenant_id, _normalize_card(card_number))
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=failure_detail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND, "Card not found"),
        )
    return CardResponse(
        cardNumber=snapshot.card_number,
        customerName=snapshot.customer_name,
        pointsBalance=snapshot.points_balance,
        visitCount=snapshot.visit_count,
        totalSpendCents=snapshot.total_spend_cents,
        rank=RankResponse(
            id=snapshot.rank.rank_id,
            name=snapshot.rank.name,
            multiplier=float(snapshot.rank.multiplier),
            discountPct=float(snapshot.rank.discount_pct),
        ),
        nextRankName=snapshot.next_rank_name,
        visitsToNextRank=snapshot.visits_to_next_rank,
        restaurantName=snapshot.restaurant_name,
        programName=snapshot.program_name,
        rewardType=snapshot.reward_type,
        transactions=[
            LedgerEntryResponse(
                sequence=line.sequence,
                pointsDelta=line.points_delta,
                balanceAfter=line.balance_after,
                type=line.transaction_type,
                note=line.note,
                createdAt=line.created_at,
            )
            for line in snapshot.history
        ],
    )


@router.get(
    "/customers/{card_number}/ledger/audit",
    response_model=LedgerAuditResponse,
    summary="Replay a customer's ledger against the stored balance",
)
async def audit_customer_ledger(
    card_number: str,
    staff: RestaurantStaff = Depends(require_staff),
    db: AsyncSession = Depends(get_session),
) -> LedgerAuditResponse:
    normalized = _normalize_card(card_number)
    repository = LoyaltyRepository(db, staff.restaurant_id)
    customer = None
    if card_codec.validate(normalized):
        customer = await repository.get_customer_by_card(normalized)
    if customer is None:
        raise_for_failure(LoyaltyFailure.of(LoyaltyErrorCode.CUSTOMER_NOT_FOUND))

    audit = await PointLedger(repository).verify(customer)
    return LedgerAuditResponse(
        customerId=audit.customer_id,
        consistent=audit.consistent,
        entries=audit.entries,
        replayedBalance=audit.replayed_balance,
        storedBalance=audit.stored_balance,
        firstMismatchSequence=audit.first_mismatch_sequence,
    )
