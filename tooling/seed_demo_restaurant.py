"""Seed a demo restaurant with ranks, staff and rewards into the API database."""

from __future__ import annotations

import asyncio
import os
from decimal import Decimal
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from revisit_api.core.settings import settings
from revisit_api.models import Rank, Restaurant, RestaurantStaff, RewardConfig, RewardTypeEnum, StaffRoleEnum


class SeedRank(TypedDict):
    name: str
    min_visits: int
    multiplier: Decimal
    discount_pct: Decimal


DEMO_SLUG = os.getenv("DEMO_RESTAURANT_SLUG", "cantina-demo").lower()

DEMO_RANKS: list[SeedRank] = [
    {"name": "Bronze", "min_visits": 0, "multiplier": Decimal("1.00"), "discount_pct": Decimal("0")},
    {"name": "Prata", "min_visits": 5, "multiplier": Decimal("1.25"), "discount_pct": Decimal("5")},
    {"name": "Ouro", "min_visits": 15, "multiplier": Decimal("1.50"), "discount_pct": Decimal("10")},
]

DEMO_STAFF = [
    (os.getenv("DEMO_OWNER_USER_ID", "owner@revisit.dev").lower(), StaffRoleEnum.OWNER),
    (os.getenv("DEMO_MANAGER_USER_ID", "manager@revisit.dev").lower(), StaffRoleEnum.MANAGER),
]

DEMO_REWARDS = [("Sobremesa", 100), ("Prato do dia", 250)]


async def seed_restaurant(session: AsyncSession) -> Restaurant:
    existing = await session.execute(select(Restaurant).where(Restaurant.slug == DEMO_SLUG))
    restaurant = existing.scalar_one_or_none()
    if restaurant is None:
        restaurant = Restaurant(
            name="Cantina Demo",
            slug=DEMO_SLUG,
            program_name="Clube Cantina",
            earn_rate=1,
            reward_type=RewardTypeEnum(os.getenv("DEMO_REWARD_TYPE", RewardTypeEnum.CASHBACK.value)),
            point_expiry_days=180,
        )
        session.add(restaurant)
        await session.flush()

    ranks = await session.execute(select(Rank).where(Rank.restaurant_id == restaurant.id))
    if ranks.first() is None:
        for index, rank in enumerate(DEMO_RANKS):
            session.add(Rank(restaurant_id=restaurant.id, sort_order=index, **rank))

    for user_id, role in DEMO_STAFF:
        member = await session.execute(
            select(RestaurantStaff).where(
                RestaurantStaff.restaurant_id == restaurant.id,
                RestaurantStaff.user_id == user_id,
            )
        )
        record = member.scalar_one_or_none()
        if record:
            record.role = role
            record.deleted_at = None
        else:
            session.add(RestaurantStaff(restaurant_id=restaurant.id, user_id=user_id, role=role))

    rewards = await session.execute(select(RewardConfig).where(RewardConfig.restaurant_id == restaurant.id))
    if rewards.first() is None:
        for name, points in DEMO_REWARDS:
            session.add(RewardConfig(restaurant_id=restaurant.id, name=name, points_required=points))

    await session.commit()
    return restaurant


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            restaurant = await seed_restaurant(session)
        print(f"Demo restaurant ready: {restaurant.slug} ({restaurant.id})")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
