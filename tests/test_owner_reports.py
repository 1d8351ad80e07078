from __future__ import annotations

import datetime as dt
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from revisit_api.models import Customer
from revisit_api.services.loyalty import (
    CustomerRegistry,
    OwnerReportService,
    RedemptionEngine,
    SaleTransactionEngine,
)
from revisit_api.services.loyalty.reports import normalize_period, period_start

ANA = ("Ana Souza", "11988887777")
BRUNO = ("Bruno Lima", "11966665555")
CARLA = ("Carla Dias", "21933334444")


async def _register(session_factory, tenant, customer: tuple[str, str]) -> str:
    name, phone = customer
    async with session_factory() as session:
        result = await CustomerRegistry(session).register(tenant.restaurant_id, name, phone)
    return result.card_number


async def _sell(session_factory, tenant, card: str, amount_cents: int, staff_id, *, times: int = 1) -> None:
    for _ in range(times):
        async with session_factory() as session:
            result = await SaleTransactionEngine(session).register_sale(
                tenant.restaurant_id, card, amount_cents, staff_id
            )
            assert result.ok


def _in_a_month() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc) + dt.timedelta(days=30)


def test_period_parsing_defaults_to_thirty_days() -> None:
    now = dt.datetime(2026, 10, 19, 12, 0, tzinfo=dt.timezone.utc)

    assert normalize_period("7D") == "7d"
    assert normalize_period("1y") == "30d"
    assert normalize_period(None) == "30d"
    assert period_start("7d", now) == dt.datetime(2026, 10, 12, 12, 0, tzinfo=dt.timezone.utc)
    assert period_start("90d", now) == dt.datetime(2026, 7, 21, 12, 0, tzinfo=dt.timezone.utc)
    assert period_start("all", now) is None


@pytest.mark.asyncio
async def test_analytics_summarises_the_program(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)
    ana = await _register(session_factory, tenant, ANA)
    bruno = await _register(session_factory, tenant, BRUNO)
    await _sell(session_factory, tenant, ana, 1000, tenant.manager_id, times=3)
    await _sell(session_factory, tenant, bruno, 500, tenant.owner_id)

    async with session_factory() as session:
        customer = (await session.execute(select(Customer).where(Customer.card_number == bruno))).scalar_one()
        customer.current_rank_id = None
        await session.commit()

    async with session_factory() as session:
        service = OwnerReportService(session)
        everything = await service.analytics(tenant.restaurant_id, "all")
        fallback = await service.analytics(tenant.restaurant_id, "1y")
        future_week = await service.analytics(tenant.restaurant_id, "7d", now=_in_a_month())

    assert everything.period == "all"
    assert everything.total_customers == 2
    assert everything.points_issued == 35
    assert everything.sales_count == 4
    assert everything.revenue_cents == 3500
    assert [(item.rank_id, item.name, item.customers) for item in everything.rank_distribution] == [
        (None, "Sem nível", 1),
        (tenant.rank_ids[1], "Prata", 1),
    ]

    assert fallback.period == "30d"
    assert fallback.points_issued == 35

    assert future_week.total_customers == 2
    assert future_week.points_issued == 0
    assert future_week.sales_count == 0
    assert future_week.revenue_cents == 0


@pytest.mark.asyncio
async def test_customer_directory_searches_and_paginates(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)
    other = await tenant_seeder(session_factory, slug="other")
    for customer in (ANA, BRUNO, CARLA):
        await _register(session_factory, tenant, customer)
    await _register(session_factory, other, ("Ana Outra", "11911112222"))

    async with session_factory() as session:
        service = OwnerReportService(session)
        first = await service.list_customers(tenant.restaurant_id, page_size=2)
        second = await service.list_customers(tenant.restaurant_id, page=2, page_size=2)
        by_name = await service.list_customers(tenant.restaurant_id, query="bru")
        by_phone = await service.list_customers(tenant.restaurant_id, query="88887777")
        by_card = await service.list_customers(tenant.restaurant_id, query="0002")
        wildcard = await service.list_customers(tenant.restaurant_id, query="%")

    assert first.total == 3
    assert first.total_pages == 2
    assert [item.name for item in first.items] == ["Carla Dias", "Bruno Lima"]
    assert [item.name for item in second.items] == ["Ana Souza"]
    assert {item.rank_name for item in first.items + second.items} == {"Bronze"}
    assert [item.name for item in by_name.items] == ["Bruno Lima"]
    assert [item.name for item in by_phone.items] == ["Ana Souza"]
    assert [item.card_number for item in by_card.items] == ["#0002-8"]
    assert wildcard.total == 0
    assert wildcard.items == []


@pytest.mark.asyncio
async def test_customer_detail_includes_recent_ledger(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)
    other = await tenant_seeder(session_factory, slug="other")
    ana = await _register(session_factory, tenant, ANA)
    await _sell(session_factory, tenant, ana, 1000, tenant.manager_id, times=2)

    async with session_factory() as session:
        customer_id = (await session.execute(select(Customer.id))).scalar_one()
        service = OwnerReportService(session)
        detail = await service.customer_detail(tenant.restaurant_id, customer_id)
        missing = await service.customer_detail(tenant.restaurant_id, uuid4())
        foreign = await service.customer_detail(other.restaurant_id, customer_id)

    assert detail.customer.card_number == ana
    assert detail.customer.points_balance == 20
    assert detail.customer.visit_count == 2
    assert detail.customer.total_spend_cents == 2000
    assert detail.customer.rank_name == "Bronze"
    assert [(line.sequence, line.transaction_type, line.balance_after) for line in detail.history] == [
        (2, "earn", 20),
        (1, "earn", 10),
    ]
    assert missing is None
    assert foreign is None


@pytest.mark.asyncio
async def test_sales_and_activity_logs_name_customer_and_staff(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)
    other = await tenant_seeder(session_factory, slug="other")
    ana = await _register(session_factory, tenant, ANA)
    bruno = await _register(session_factory, tenant, BRUNO)
    await _sell(session_factory, tenant, ana, 1000, tenant.manager_id)
    await _sell(session_factory, tenant, bruno, 500, tenant.owner_id)
    async with session_factory() as session:
        redeemed = await RedemptionEngine(session).redeem(
            tenant.restaurant_id, ana, "cashback", staff_id=tenant.manager_id
        )
    assert redeemed.points_spent == 10

    async with session_factory() as session:
        service = OwnerReportService(session)
        sales = await service.sales_log(tenant.restaurant_id, period="all")
        activity = await service.activity_log(tenant.restaurant_id, period="all")
        later_sales = await service.sales_log(tenant.restaurant_id, period="7d", now=_in_a_month())
        foreign = await service.activity_log(other.restaurant_id, period="all")

    assert sales.total == 2
    assert {(item.customer_name, item.card_number, item.amount_cents, item.staff_role) for item in sales.items} == {
        ("Ana Souza", ana, 1000, "manager"),
        ("Bruno Lima", bruno, 500, "owner"),
    }
    assert activity.total == 3
    assert {
        (item.customer_name, item.transaction_type, item.points_delta, item.staff_role) for item in activity.items
    } == {
        ("Ana Souza", "earn", 10, "manager"),
        ("Bruno Lima", "earn", 5, "owner"),
        ("Ana Souza", "redeem", -10, "manager"),
    }
    assert later_sales.total == 0
    assert later_sales.items == []
    assert foreign.total == 0


@pytest.mark.asyncio
async def test_owner_dashboard_endpoints(app_with_db, tenant_seeder) -> None:
    app, session_factory = app_with_db
    tenant = await tenant_seeder(session_factory)
    ana = await _register(session_factory, tenant, ANA)
    await _sell(session_factory, tenant, ana, 1234, tenant.manager_id)
    owner = {"X-Restaurant-Id": str(tenant.restaurant_id), "X-Staff-User": tenant.owner_user}
    manager = {"X-Restaurant-Id": str(tenant.restaurant_id), "X-Staff-User": tenant.manager_user}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        forbidden = await client.get("/api/v1/owner/analytics", headers=manager)
        analytics = await client.get("/api/v1/owner/analytics", params={"period": "all"}, headers=owner)
        customers = await client.get("/api/v1/owner/customers", params={"q": "ana"}, headers=owner)
        customer_id = customers.json()["items"][0]["id"]
        detail = await client.get(f"/api/v1/owner/customers/{customer_id}", headers=owner)
        unknown = await client.get(f"/api/v1/owner/customers/{uuid4()}", headers=owner)
        sales = await client.get("/api/v1/owner/logs/sales", params={"period": "all"}, headers=owner)
        activity = await client.get("/api/v1/owner/logs/activity", headers=owner)
        bad_page = await client.get("/api/v1/owner/logs/sales", params={"page": 0}, headers=owner)

    assert forbidden.status_code == 403
    assert analytics.status_code == 200
    assert analytics.json()["totalCustomers"] == 1
    assert analytics.json()["pointsIssued"] == 12
    assert analytics.json()["revenueCents"] == 1234
    assert analytics.json()["rankDistribution"] == [
        {"rankId": str(tenant.rank_ids[0]), "name": "Bronze", "customers": 1}
    ]
    assert customers.json()["total"] == 1
    assert customers.json()["pageSize"] == 25
    assert customers.json()["items"][0]["cardNumber"] == ana
    assert detail.status_code == 200
    assert detail.json()["customer"]["rankName"] == "Bronze"
    assert [entry["type"] for entry in detail.json()["transactions"]] == ["earn"]
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["error"] == "customer_not_found"
    assert sales.json()["items"][0]["staffRole"] == "manager"
    assert sales.json()["items"][0]["amountCents"] == 1234
    assert activity.json()["total"] == 1
    assert activity.json()["items"][0]["type"] == "earn"
    assert bad_page.status_code == 422
