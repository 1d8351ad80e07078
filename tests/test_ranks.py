from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy import select

from revisit_api.models import Customer, Rank
from revisit_api.services.loyalty import (
    CustomerRegistry,
    LoyaltyErrorCode,
    LoyaltyFailure,
    RankInput,
    RankResolver,
    RankSettingsService,
)
from revisit_api.services.loyalty.ranks import validate_rank_inputs


def _rank(name: str, sort_order: int, min_visits: int) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        name=name,
        sort_order=sort_order,
        min_visits=min_visits,
        multiplier=Decimal("1"),
        discount_pct=Decimal("0"),
    )


def test_resolve_without_rank_uses_neutral_defaults() -> None:
    info = RankResolver().resolve(None)

    assert info.rank_id is None
    assert info.name == "Sem nível"
    assert info.multiplier == Decimal("1")
    assert info.discount_pct == Decimal("0")


def test_target_rank_picks_highest_unlocked_rank() -> None:
    bronze, silver, gold = _rank("Bronze", 0, 0), _rank("Prata", 1, 3), _rank("Ouro", 2, 10)
    ranks = [gold, bronze, silver]

    assert RankResolver.target_rank_for_visits(ranks, 0) is bronze
    assert RankResolver.target_rank_for_visits(ranks, 3) is silver
    assert RankResolver.target_rank_for_visits(ranks, 99) is gold
    assert RankResolver.target_rank_for_visits([silver], 1) is None


def test_target_rank_ties_go_to_higher_sort_order() -> None:
    first, second = _rank("A", 1, 5), _rank("B", 2, 5)

    assert RankResolver.target_rank_for_visits([second, first], 5) is second


def test_next_rank_and_promotion_ordering() -> None:
    bronze, silver = _rank("Bronze", 0, 0), _rank("Prata", 1, 3)

    assert RankResolver.next_rank([silver, bronze], bronze) is silver
    assert RankResolver.next_rank([silver, bronze], silver) is None
    assert RankResolver.next_rank([silver, bronze], None) is bronze
    assert RankResolver.outranks(silver, bronze)
    assert RankResolver.outranks(bronze, None)
    assert not RankResolver.outranks(bronze, silver)
    assert not RankResolver.outranks(None, bronze)


def test_validate_rank_inputs_reports_field_errors() -> None:
    errors = validate_rank_inputs(
        [
            RankInput(name="", min_visits=0, multiplier="1", discount_pct="0"),
            RankInput(name="x" * 51, min_visits=-1, multiplier="0.05", discount_pct="101"),
        ]
    )

    assert set(errors) == {
        "ranks.0.name",
        "ranks.1.name",
        "ranks.1.min_visits",
        "ranks.1.multiplier",
        "ranks.1.discount_pct",
    }
    assert validate_rank_inputs([]) == {"ranks": "At least one rank is required"}


def test_validate_rank_inputs_requires_single_entry_rank() -> None:
    errors = validate_rank_inputs(
        [
            RankInput(name="A", min_visits=0),
            RankInput(name="B", min_visits=0),
        ]
    )

    assert "ranks" in errors


@pytest.mark.asyncio
async def test_replace_ranks_sorts_and_repoints_customers(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)
    async with session_factory() as session:
        registry = CustomerRegistry(session)
        await registry.register(tenant.restaurant_id, "Ana Souza", "11988887777")
        await registry.register(tenant.restaurant_id, "Bruno Lima", "11977776666")

    async with session_factory() as session:
        regular = (
            await session.execute(select(Customer).where(Customer.phone == "11977776666"))
        ).scalar_one()
        regular.visit_count = 7
        await session.commit()

    async with session_factory() as session:
        result = await RankSettingsService(session).replace_ranks(
            tenant.restaurant_id,
            [
                RankInput(name="Gold", min_visits=6, multiplier="2", discount_pct="15"),
                RankInput(name=" Starter ", min_visits=0, multiplier="1", discount_pct="0"),
                RankInput(name="Silver", min_visits=2, multiplier="1.5", discount_pct="5"),
            ],
        )

    assert not isinstance(result, LoyaltyFailure)
    assert [(rank.name, rank.sort_order) for rank in result] == [("Starter", 0), ("Silver", 1), ("Gold", 2)]

    async with session_factory() as session:
        ranks = (await session.execute(select(Rank).order_by(Rank.sort_order))).scalars().all()
        by_id = {rank.id: rank.name for rank in ranks}
        customers = {
            customer.phone: by_id.get(customer.current_rank_id)
            for customer in (await session.execute(select(Customer))).scalars().all()
        }

    assert [rank.name for rank in ranks] == ["Starter", "Silver", "Gold"]
    assert customers == {"11988887777": "Starter", "11977776666": "Gold"}


@pytest.mark.asyncio
async def test_replace_ranks_rejects_invalid_sets_without_changes(session_factory, tenant_seeder) -> None:
    tenant = await tenant_seeder(session_factory)

    async with session_factory() as session:
        service = RankSettingsService(session)
        result = await service.replace_ranks(tenant.restaurant_id, [RankInput(name="Only", min_visits=0, multiplier="11")])
        ranks = await service.list_ranks(tenant.restaurant_id)

    assert isinstance(result, LoyaltyFailure)
    assert result.code == LoyaltyErrorCode.VALIDATION_ERROR
    assert [rank.name for rank in ranks] == ["Bronze", "Prata", "Ouro"]


@pytest.mark.asyncio
async def test_replace_ranks_requires_tenant(session_factory) -> None:
    async with session_factory() as session:
        service = RankSettingsService(session)
        missing = await service.replace_ranks(None, [RankInput(name="Only", min_visits=0)])
        unknown = await service.replace_ranks(uuid4(), [RankInput(name="Only", min_visits=0)])

    assert missing.code == LoyaltyErrorCode.NOT_AUTHENTICATED
    assert unknown.code == LoyaltyErrorCode.TENANT_NOT_FOUND


@pytest.mark.asyncio
async def test_replace_ranks_keeps_members_on_the_entry_rank(session_factory, tenant_seeder) -> None:
    tiers = [
        RankInput(name="Bronze", min_visits=2, multiplier="1", discount_pct="0"),
        RankInput(name="Prata", min_visits=5, multiplier="1.5", discount_pct="5"),
    ]
    tenant = await tenant_seeder(session_factory, ranks=(("Bronze", 2, "1.00", "0"), ("Prata", 5, "1.50", "5")))
    async with session_factory() as session:
        enrolled = await CustomerRegistry(session).register(tenant.restaurant_id, "Ana Souza", "11988887777")
    assert enrolled.rank_name == "Bronze"

    async with session_factory() as session:
        result = await RankSettingsService(session).replace_ranks(tenant.restaurant_id, tiers)
    assert not isinstance(result, LoyaltyFailure)

    async with session_factory() as session:
        await CustomerRegistry(session).register(tenant.restaurant_id, "Bruno Lima", "11977776666")

    async with session_factory() as session:
        by_id = {rank.id: rank.name for rank in (await session.execute(select(Rank))).scalars().all()}
        customers = {
            customer.phone: by_id.get(customer.current_rank_id)
            for customer in (await session.execute(select(Customer))).scalars().all()
        }

    assert customers == {"11988887777": "Bronze", "11977776666": "Bronze"}
