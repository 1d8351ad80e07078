"""Owner dashboard: analytics, customer directory and activity logs."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.dependencies.tenant import require_owner
from revisit_api.api.errors import failure_detail
from revisit_api.db.session import get_session
from revisit_api.models.restaurant import RestaurantStaff
from revisit_api.services.loyalty import OwnerReportService
from revisit_api.services.loyalty.reports import CustomerSummary, DEFAULT_PERIOD
from revisit_api.services.loyalty.results import LoyaltyErrorCode


router = APIRouter(prefix="/owner", tags=["owner"])


class RankCountResponse(BaseModel):
    rankId: Optional[UUID]
    name: str
    customers: int


class AnalyticsResponse(BaseModel):
    period: str
    totalCustomers: int
    pointsIssued: int
    salesCount: int
    revenueCents: int
    rankDistribution: List[RankCountResponse]


class CustomerSummaryResponse(BaseModel):
    id: UUID
    name: str
    phone: str
    cardNumber: str
    pointsBalance: int
    visitCount: int
    totalSpendCents: int
    rankName: str
    createdAt: Optional[datetime]


class CustomerPageResponse(BaseModel):
    items: List[CustomerSummaryResponse]
    total: int
    page: int
    pageSize: int
    totalPages: int


class LedgerEntryResponse(BaseModel):
    sequence: int
    pointsDelta: int
    balanceAfter: int
    type: str
    note: Optional[str]
    createdAt: Optional[datetime]


class CustomerDetailResponse(BaseModel):
    customer: CustomerSummaryResponse
    transactions: List[LedgerEntryResponse]


class SaleLogResponse(BaseModel):
    id: UUID
    createdAt: Optional[datetime]
    amountCents: int
    pointsEarned: int
    customerName: str
    cardNumber: str
    staffRole: Optional[str]


class SaleLogPageResponse(BaseModel):
    items: List[SaleLogResponse]
    total: int
    page: int
    pageSize: int
    totalPages: int


class ActivityLogResponse(BaseModel):
    id: UUID
    createdAt: Optional[datetime]
    customerId: UUID
    customerName: str
    cardNumber: str
    type: str
    pointsDelta: int
    balanceAfter: int
    note: Optional[str]
    referenceId: Optional[UUID]
    staffRole: Optional[str]


class ActivityLogPageResponse(BaseModel):
    items: List[ActivityLogResponse]
    total: int
    page: int
    pageSize: int
    totalPages: int


def _customer(summary: CustomerSummary) -> CustomerSummaryResponse:
    return CustomerSummaryResponse(
        id=summary.id,
        name=summary.name,
        phone=summary.phone,
        cardNumber=summary.card_number,
        pointsBalance=summary.points_balance,
        visitCount=summary.visit_count,
        totalSpendCents=summary.total_spend_cents,
        rankName=summary.rank_name,
        createdAt=summary.created_at,
    )


@router.get("/analytics", response_model=AnalyticsResponse)
async def analytics(
    period: str = Query(DEFAULT_PERIOD, description="7d, 30d, 90d or all"),
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> AnalyticsResponse:
    summary = await OwnerReportService(db).analytics(staff.restaurant_id, period)
    return AnalyticsResponse(
        period=summary.period,
        totalCustomers=summary.total_customers,
        pointsIssued=summary.points_issued,
        salesCount=summary.sales_count,
        revenueCents=summary.revenue_cents,
        rankDistribution=[
            RankCountResponse(rankId=item.rank_id, name=item.name, customers=item.customers)
            for item in summary.rank_distribution
        ],
    )


@router.get("/customers", response_model=CustomerPageResponse)
async def list_customers(
    q: Optional[str] = Query(None, description="Matches name, phone or card number"),
    page: int = Query(1, ge=1),
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> CustomerPageResponse:
    result = await OwnerReportService(db).list_customers(staff.restaurant_id, query=q, page=page)
    return CustomerPageResponse(
        items=[_customer(item) for item in result.items],
        total=result.total,
        page=result.page,
        pageSize=result.page_size,
        totalPages=result.total_pages,
    )


@router.get("/customers/{customer_id}", response_model=CustomerDetailResponse)
async def customer_detail(
    customer_id: UUID,
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> CustomerDetailResponse:
    detail = await OwnerReportService(db).customer_detail(staff.restaurant_id, customer_id)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=failure_detail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND, "Customer not found"),
        )
    return CustomerDetailResponse(
        customer=_customer(detail.customer),
        transactions=[
            LedgerEntryResponse(
                sequence=line.sequence,
                pointsDelta=line.points_delta,
                balanceAfter=line.balance_after,
                type=line.transaction_type,
                note=line.note,
                createdAt=line.created_at,
            )
            for line in detail.history
        ],
    )


@router.get("/logs/sales", response_model=SaleLogPageResponse)
async def sales_log(
    period: str = Query(DEFAULT_PERIOD, description="7d, 30d, 90d or all"),
    page: int = Query(1, ge=1),
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> SaleLogPageResponse:
    result = await OwnerReportService(db).sales_log(staff.restaurant_id, period=period, page=page)
    return SaleLogPageResponse(
        items=[
            SaleLogResponse(
                id=item.sale_id,
                createdAt=item.created_at,
                amountCents=item.amount_cents,
                pointsEarned=item.points_earned,
                customerName=item.customer_name,
                cardNumber=item.card_number,
                staffRole=item.staff_role,
            )
            for item in result.items
        ],
        total=result.total,
        page=result.page,
        pageSize=result.page_size,
        totalPages=result.total_pages,
    )


@router.get("/logs/activity", response_model=ActivityLogPageResponse)
async def activity_log(
    period: str = Query(DEFAULT_PERIOD, description="7d, 30d, 90d or all"),
    page: int = Query(1, ge=1),
    staff: RestaurantStaff = Depends(require_owner),
    db: AsyncSession = Depends(get_session),
) -> ActivityLogPageResponse:
    result = await OwnerReportService(db).activity_log(staff.restaurant_id, period=period, page=page)
    return ActivityLogPageResponse(
        items=[
            ActivityLogResponse(
                id=item.entry_id,
                createdAt=item.created_at,
                customerId=item.customer_id,
                customerName=item.customer_name,
                cardNumber=item.card_number,
                type=item.transaction_type,
                pointsDelta=item.points_delta,
                balanceAfter=item.balance_after,
                note=item.note,
                referenceId=item.reference_id,
                staffRole=item.staff_role,
            )
            for item in result.items
        ],
        total=result.total,
        page=result.page,
        pageSize=result.page_size,
        totalPages=result.total_pages,
    )
