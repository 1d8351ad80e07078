import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Sequence
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from revisit_api.app import create_app  # noqa: E402
from revisit_api.db.base import Base  # noqa: E402
from revisit_api.db.session import get_session  # noqa: E402
from revisit_api.models import (  # noqa: E402
    Rank,
    Restaurant,
    RestaurantStaff,
    RewardConfig,
    RewardTypeEnum,
    StaffRoleEnum,
)
from revisit_api.observability.loyalty import get_loyalty_store  # noqa: E402

DEFAULT_RANKS: Sequence[tuple[str, int, str, str]] = (
    ("Bronze", 0, "1.00", "0"),
    ("Prata", 3, "1.50", "5"),
    ("Ouro", 10, "2.00", "10"),
)


@dataclass(frozen=True)
class SeededTenant:
    restaurant_id: UUID
    owner_id: UUID
    owner_user: str
    manager_id: UUID
    manager_user: str
    rank_ids: tuple[UUID, ...]
    reward_ids: tuple[UUID, ...]


async def seed_tenant(
    session_factory,
    *,
    slug: str = "cantina",
    earn_rate: int = 1,
    reward_type: RewardTypeEnum = RewardTypeEnum.CASHBACK,
    ranks: Sequence[tuple[str, int, str, str]] = DEFAULT_RANKS,
    rewards: Sequence[tuple[str, int]] = (),
    point_expiry_days: int | None = None,
) -> SeededTenant:
    async with session_factory() as session:
        restaurant = Restaurant(
            name=f"Restaurant {slug}",
            slug=slug,
            program_name="Clube",
            earn_rate=earn_rate,
            reward_type=reward_type,
            point_expiry_days=point_expiry_days,
        )
        session.add(restaurant)
        await session.flush()

        rank_rows = [
            Rank(
                restaurant_id=restaurant.id,
                name=name,
                sort_order=index,
                min_visits=min_visits,
                multiplier=Decimal(multiplier),
                discount_pct=Decimal(discount),
            )
            for index, (name, min_visits, multiplier, discount) in enumerate(ranks)
        ]
        owner = RestaurantStaff(restaurant_id=restaurant.id, user_id=f"owner-{slug}", role=StaffRoleEnum.OWNER)
        manager = RestaurantStaff(restaurant_id=restaurant.id, user_id=f"manager-{slug}", role=StaffRoleEnum.MANAGER)
        reward_rows = [
            RewardConfig(restaurant_id=restaurant.id, name=name, points_required=points)
            for name, points in rewards
        ]
        session.add_all([*rank_rows, owner, manager, *reward_rows])
        await session.commit()

        return SeededTenant(
            restaurant_id=restaurant.id,
            owner_id=owner.id,
            owner_user=owner.user_id,
            manager_id=manager.id,
            manager_user=manager.user_id,
            rank_ids=tuple(rank.id for rank in rank_rows),
            reward_ids=tuple(reward.id for reward in reward_rows),
        )


async def _build_factory(url: str):
    engine = create_async_engine(url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _build_factory("sqlite+aiosqlite:///:memory:")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed database so concurrent sessions use separate connections."""

    engine, factory = await _build_factory(f"sqlite+aiosqlite:///{tmp_path / 'loyalty.db'}")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_loyalty_store():
    get_loyalty_store().reset()
    yield


@pytest.fixture
def tenant_seeder():
    return seed_tenant
