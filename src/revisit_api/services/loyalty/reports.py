"""Owner dashboard reads: program analytics, customer directory and activity logs."""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.core.settings import settings
from revisit_api.models.customer import Customer
from revisit_api.models.ledger import PointTransaction
from revisit_api.services.loyalty.ledger import PointLedger
from revisit_api.services.loyalty.registry import LedgerLine
from revisit_api.services.loyalty.repository import LoyaltyRepository

PERIOD_DAYS: dict[str, Optional[int]] = {"7d": 7, "30d": 30, "90d": 90, "all": None}
DEFAULT_PERIOD = "30d"
PAGE_SIZE = 25
CUSTOMER_HISTORY_LIMIT = 20

T = TypeVar("T")


def normalize_period(value: object) -> str:
    """Unknown or missing periods fall back to the last 30 days."""

    if isinstance(value, str) and value.strip().lower() in PERIOD_DAYS:
        return value.strip().lower()
    return DEFAULT_PERIOD


def period_start(period: str, now: dt.datetime | None = None) -> dt.datetime | None:
    days = PERIOD_DAYS[normalize_period(period)]
    if days is None:
        return None
    reference = now or dt.datetime.now(dt.timezone.utc)
    if reference.tzinfo is not None:
        reference = reference.astimezone(dt.timezone.utc)
    return reference - dt.timedelta(days=days)


@dataclass(frozen=True)
class RankCount:
    rank_id: Optional[UUID]
    name: str
    customers: int


@dataclass(frozen=True)
class AnalyticsSummary:
    period: str
    total_customers: int
    points_issued: int
    sales_count: int
    revenue_cents: int
    rank_distribution: list[RankCount] = field(default_factory=list)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))


@dataclass(frozen=True)
class CustomerSummary:
    id: UUID
    name: str
    phone: str
    card_number: str
    points_balance: int
    visit_count: int
    total_spend_cents: int
    rank_name: str
    created_at: Optional[dt.datetime]


@dataclass(frozen=True)
class CustomerDetail:
    customer: CustomerSummary
    history: list[LedgerLine]


@dataclass(frozen=True)
class SaleLogEntry:
    sale_id: UUID
    created_at: Optional[dt.datetime]
    amount_cents: int
    points_earned: int
    customer_name: str
    card_number: str
    staff_role: Optional[str]


@dataclass(frozen=True)
class ActivityLogEntry:
    entry_id: UUID
    created_at: Optional[dt.datetime]
    customer_id: UUID
    customer_name: str
    card_number: str
    transaction_type: str
    points_delta: int
    balance_after: int
    note: Optional[str]
    reference_id: Optional[UUID]
    staff_role: Optional[str]


def _ledger_line(entry: PointTransaction) -> LedgerLine:
    return LedgerLine(
        sequence=entry.sequence,
        points_delta=entry.points_delta,
        balance_after=entry.balance_after,
        transaction_type=entry.transaction_type.value,
        note=entry.note,
        created_at=entry.created_at,
    )


class OwnerReportService:
    """Read-only views over one restaurant's program for its owner."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def analytics(
        self,
        tenant_id: UUID | str | None,
        period: object = DEFAULT_PERIOD,
        *,
        now: dt.datetime | None = None,
    ) -> AnalyticsSummary:
        """Customer count and rank mix are all-time; points and sales honour ``period``."""

        repository = LoyaltyRepository(self._db, tenant_id)
        period = normalize_period(period)
        since = period_start(period, now)

        sales_count, revenue = await repository.sales_totals(since=since)
        distribution = [
            RankCount(rank_id=rank_id, name=name or settings.no_rank_name, customers=count)
            for rank_id, name, count in await repository.rank_distribution()
        ]
        return AnalyticsSummary(
            period=period,
            total_customers=await repository.count_customers(),
            points_issued=await repository.sum_points_issued(since=since),
            sales_count=sales_count,
            revenue_cents=revenue,
            rank_distribution=distribution,
        )

    async def list_customers(
        self,
        tenant_id: UUID | str | None,
        *,
        query: str | None = None,
        page: int = 1,
        page_size: int = PAGE_SIZE,
    ) -> Page[CustomerSummary]:
        repository = LoyaltyRepository(self._db, tenant_id)
        page = max(1, page)
        total = await repository.count_customers(search=query)
        customers = await repository.list_customers(
            search=query,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        rank_names = {rank.id: rank.name for rank in await repository.list_ranks()}
        items = [self._summary(customer, rank_names) for customer in customers]
        return Page(items=items, total=total, page=page, page_size=page_size)

    async def customer_detail(
        self,
        tenant_id: UUID | str | None,
        customer_id: UUID,
        *,
        history_limit: int = CUSTOMER_HISTORY_LIMIT,
    ) -> CustomerDetail | None:
        repository = LoyaltyRepository(self._db, tenant_id)
        customer = await repository.get_customer(customer_id)
        if customer is None:
            return None
        rank_names = {rank.id: rank.name for rank in await repository.list_ranks()}
        entries = await PointLedger(repository).history(customer, limit=history_limit)
        return CustomerDetail(
            customer=self._summary(customer, rank_names),
            history=[_ledger_line(entry) for entry in entries],
        )

    async def sales_log(
        self,
        tenant_id: UUID | str | None,
        *,
        period: object = DEFAULT_PERIOD,
        page: int = 1,
        page_size: int = PAGE_SIZE,
        now: dt.datetime | None = None,
    ) -> Page[SaleLogEntry]:
        repository = LoyaltyRepository(self._db, tenant_id)
        page = max(1, page)
        since = period_start(normalize_period(period), now)
        total, _ = await repository.sales_totals(since=since)
        rows = await repository.list_sales(since=since, offset=(page - 1) * page_size, limit=page_size)
        items = [
            SaleLogEntry(
                sale_id=sale.id,
                created_at=sale.created_at,
                amount_cents=sale.amount_cents,
                points_earned=sale.points_earned,
                customer_name=customer_name,
                card_number=card_number,
                staff_role=role.value if role is not None else None,
            )
            for sale, customer_name, card_number, role in rows
        ]
        return Page(items=items, total=total, page=page, page_size=page_size)

    async def activity_log(
        self,
        tenant_id: UUID | str | None,
        *,
        period: object = DEFAULT_PERIOD,
        page: int = 1,
        page_size: int = PAGE_SIZE,
        now: dt.datetime | None = None,
    ) -> Page[ActivityLogEntry]:
        repository = LoyaltyRepository(self._db, tenant_id)
        page = max(1, page)
        since = period_start(normalize_period(period), now)
        total = await repository.count_ledger_activity(since=since)
        rows = await repository.list_ledger_activity(
            since=since,
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        items = [
            ActivityLogEntry(
                entry_id=entry.id,
                created_at=entry.created_at,
                customer_id=entry.customer_id,
                customer_name=customer_name,
                card_number=card_number,
                transaction_type=entry.transaction_type.value,
                points_delta=entry.points_delta,
                balance_after=entry.balance_after,
                note=entry.note,
                reference_id=entry.reference_id,
                staff_role=role.value if role is not None else None,
            )
            for entry, customer_name, card_number, role in rows
        ]
        return Page(items=items, total=total, page=page, page_size=page_size)

    @staticmethod
    def _summary(customer: Customer, rank_names: dict[UUID, str]) -> CustomerSummary:
        return CustomerSummary(
            id=customer.id,
            name=customer.name,
            phone=customer.phone,
            card_number=customer.card_number,
            points_balance=customer.points_balance,
            visit_count=customer.visit_count,
            total_spend_cents=customer.total_spend,
            rank_name=rank_names.get(customer.current_rank_id, settings.no_rank_name),
            created_at=customer.created_at,
        )


__all__ = [
    "ActivityLogEntry",
    "AnalyticsSummary",
    "CustomerDetail",
    "CustomerSummary",
    "OwnerReportService",
    "Page",
    "RankCount",
    "SaleLogEntry",
    "normalize_period",
    "period_start",
]
