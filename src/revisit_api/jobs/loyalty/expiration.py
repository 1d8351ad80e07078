"""Expire the balances of customers who stopped visiting."""

# meta: job: loyalty-point-expiration

from __future__ import annotations

import datetime as dt
from typing import Any, Awaitable, Callable, Dict

from loguru import logger
from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.core.settings import settings
from revisit_api.models.customer import Customer
from revisit_api.models.ledger import PointTransaction, PointTransactionTypeEnum
from revisit_api.models.restaurant import Restaurant
from revisit_api.observability.loyalty import get_loyalty_store
from revisit_api.services.loyalty.ledger import PointLedger
from revisit_api.services.loyalty.repository import LoyaltyRepository

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]

_ACTIVITY_TYPES = (PointTransactionTypeEnum.EARN, PointTransactionTypeEnum.REDEEM)


async def run_point_expiration(
    *,
    session_factory: SessionFactory,
    now: dt.datetime | None = None,
) -> Dict[str, Any]:
    """Zero out balances idle for longer than each restaurant's ``point_expiry_days``."""

    summary: Dict[str, Any] = {"restaurants": 0, "customers_expired": 0, "points_expired": 0}
    if not settings.point_expiration_enabled:
        logger.info("Point expiration disabled; skipping sweep")
        return {**summary, "skipped": True}

    maybe_session = session_factory()
    session: AsyncSession
    if isinstance(maybe_session, AsyncSession):
        session = maybe_session
    else:
        session = await maybe_session

    reference = now or dt.datetime.now(dt.timezone.utc)
    async with session as managed_session:
        stmt = select(Restaurant).where(
            Restaurant.deleted_at.is_(None),
            Restaurant.point_expiry_days.is_not(None),
            Restaurant.point_expiry_days > 0,
        )
        restaurants = (await managed_session.execute(stmt)).scalars().all()
        plan = [(restaurant.id, int(restaurant.point_expiry_days)) for restaurant in restaurants]

        for restaurant_id, expiry_days in plan:
            customers, points = await _expire_restaurant(
                managed_session,
                restaurant_id,
                cutoff=reference - dt.timedelta(days=expiry_days),
                expiry_days=expiry_days,
            )
            await managed_session.commit()
            summary["restaurants"] += 1
            summary["customers_expired"] += customers
            summary["points_expired"] += points

    get_loyalty_store().record_expiration(summary["customers_expired"], summary["points_expired"])
    logger.bind(summary=summary).info("Point expiration sweep completed")
    return summary


async def _expire_restaurant(
    session: AsyncSession,
    restaurant_id: Any,
    *,
    cutoff: dt.datetime,
    expiry_days: int,
) -> tuple[int, int]:
    repository = LoyaltyRepository(session, restaurant_id)
    recent_activity = exists().where(
        and_(
            PointTransaction.customer_id == Customer.id,
            PointTransaction.transaction_type.in_(_ACTIVITY_TYPES),
            PointTransaction.created_at >= cutoff,
        )
    )
    stmt = select(Customer).where(
        Customer.restaurant_id == repository.tenant_id,
        Customer.deleted_at.is_(None),
        Customer.points_balance > 0,
        ~recent_activity,
    )
    idle = (await session.execute(stmt)).scalars().all()

    ledger = PointLedger(repository)
    customers = 0
    points = 0
    for customer in idle:
        balance = customer.points_balance
        entry = await ledger.apply(
            customer,
            -balance,
            PointTransactionTypeEnum.EXPIRY,
            note=f"Expired after {expiry_days} days without activity",
            require_sufficient=True,
        )
        if entry is None:
            continue
        customers += 1
        points += balance

    if customers:
        logger.info(
            "Expired idle loyalty balances",
            restaurant_id=str(restaurant_id),
            customers=customers,
            points=points,
        )
    return customers, points


__all__ = ["run_point_expiration"]
