"""Tenant-scoped data access for the loyalty engines.

Every query issued through :class:`LoyaltyRepository` is filtered by the
restaurant id it was constructed with. Constructing one without a verified
tenant id raises :class:`MissingTenantError`; there is no unscoped fallback.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import Row, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from revisit_api.models.customer import Customer
from revisit_api.models.ledger import PointTransaction, PointTransactionTypeEnum, Sale
from revisit_api.models.restaurant import Rank, Restaurant, RestaurantStaff
from revisit_api.models.reward import RewardConfig, RewardRedemption


class MissingTenantError(LookupError):
    """Raised when an operation is attempted without a tenant identifier."""


def coerce_tenant_id(value: UUID | str | None) -> UUID:
    """Normalise a tenant identifier, rejecting absent or malformed values."""

    if value is None:
        raise MissingTenantError("Tenant identifier is required")
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError as error:
        raise MissingTenantError(f"Malformed tenant identifier: {value!r}") from error


def coerce_uuid(value: UUID | str | None) -> UUID | None:
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value).strip())
    except ValueError:
        return None


class LoyaltyRepository:
    """Reads and writes loyalty rows for exactly one restaurant."""

    def __init__(self, db_session: AsyncSession, tenant_id: UUID | str | None) -> None:
        self._db = db_session
        self._tenant_id = coerce_tenant_id(tenant_id)

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    @property
    def session(self) -> AsyncSession:
        return self._db

    def add(self, instance: Any) -> Any:
        """Stage a tenant-owned row, stamping or checking its ``restaurant_id``."""

        current = getattr(instance, "restaurant_id", None)
        if current is None:
            instance.restaurant_id = self._tenant_id
        elif current != self._tenant_id:
            raise MissingTenantError("Row belongs to a different tenant")
        self._db.add(instance)
        return instance

    async def get_restaurant(self) -> Restaurant | None:
        stmt = select(Restaurant).where(
            Restaurant.id == self._tenant_id,
            Restaurant.deleted_at.is_(None),
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_customer_by_phone(self, phone: str) -> Customer | None:
        stmt = select(Customer).where(
            Customer.restaurant_id == self._tenant_id,
            Customer.phone == phone,
            Customer.deleted_at.is_(None),
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_customer_by_card(self, card_number: str) -> Customer | None:
        stmt = select(Customer).where(
            Customer.restaurant_id == self._tenant_id,
            Customer.card_number == card_number,
            Customer.deleted_at.is_(None),
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_customer_by_card(self, card_number: str) -> Customer | None:
        """Take the customer's write lock, then load the row as it stands under it.

        The lock is a self-assigning ``UPDATE``: a row lock on PostgreSQL and the
        database write lock on SQLite, which ignores ``SELECT ... FOR UPDATE``.
        It must be the first write of the transaction so every later read
        (rank, balance, visit count) sees the committed state of earlier writers.
        """

        stmt = (
            update(Customer)
            .where(
                Customer.restaurant_id == self._tenant_id,
                Customer.card_number == card_number,
                Customer.deleted_at.is_(None),
            )
            .values(ledger_sequence=Customer.ledger_sequence)
            .returning(Customer.id)
            .execution_options(synchronize_session=False)
        )
        customer_id = (await self._db.execute(stmt)).scalar_one_or_none()
        if customer_id is None:
            return None
        result = await self._db.execute(
            select(Customer)
            .where(Customer.id == customer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def promote_customer(
        self,
        customer: Customer,
        from_rank_id: UUID | None,
        to_rank_id: UUID,
    ) -> bool:
        """Move ``customer`` to ``to_rank_id`` only if it still holds ``from_rank_id``."""

        stmt = (
            update(Customer)
            .where(
                Customer.id == customer.id,
                Customer.restaurant_id == self._tenant_id,
                Customer.current_rank_id.is_not_distinct_from(from_rank_id),
            )
            .values(current_rank_id=to_rank_id)
            .returning(Customer.id)
            .execution_options(synchronize_session=False)
        )
        if (await self._db.execute(stmt)).scalar_one_or_none() is None:
            return False
        set_committed_value(customer, "current_rank_id", to_rank_id)
        return True

    def _customer_filters(self, search: str | None) -> list[Any]:
        conditions: list[Any] = [
            Customer.restaurant_id == self._tenant_id,
            Customer.deleted_at.is_(None),
        ]
        term = (search or "").strip()
        if term:
            conditions.append(
                or_(
                    Customer.name.icontains(term, autoescape=True),
                    Customer.phone.icontains(term, autoescape=True),
                    Customer.card_number.icontains(term, autoescape=True),
                )
            )
        return conditions

    async def get_customer(self, customer_id: UUID) -> Customer | None:
        stmt = select(Customer).where(
            Customer.id == customer_id,
            Customer.restaurant_id == self._tenant_id,
            Customer.deleted_at.is_(None),
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_customers(
        self,
        *,
        search: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Customer]:
        """Active customers, newest enrollment first, optionally filtered by name, phone or card."""

        stmt = (
            select(Customer)
            .where(*self._customer_filters(search))
            .order_by(Customer.created_at.desc(), Customer.card_number.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def count_customers(self, *, search: str | None = None) -> int:
        stmt = select(func.count(Customer.id)).where(*self._customer_filters(search))
        return int((await self._db.execute(stmt)).scalar_one())

    async def rank_distribution(self) -> list[tuple[UUID | None, str | None, int]]:
        """``(rank_id, rank_name, customers)`` for every rank currently held, entry tier first."""

        stmt = (
            select(Customer.current_rank_id, Rank.name, func.count(Customer.id))
            .outerjoin(Rank, Rank.id == Customer.current_rank_id)
            .where(
                Customer.restaurant_id == self._tenant_id,
                Customer.deleted_at.is_(None),
            )
            .group_by(Customer.current_rank_id, Rank.name, Rank.sort_order)
            .order_by(Rank.sort_order.asc().nulls_first())
        )
        result = await self._db.execute(stmt)
        return [(rank_id, name, int(count)) for rank_id, name, count in result.all()]

    async def sum_points_issued(self, *, since: datetime | None = None) -> int:
        stmt = select(func.coalesce(func.sum(PointTransaction.points_delta), 0)).where(
            PointTransaction.restaurant_id == self._tenant_id,
            PointTransaction.transaction_type == PointTransactionTypeEnum.EARN,
        )
        if since is not None:
            stmt = stmt.where(PointTransaction.created_at >= since)
        return int((await self._db.execute(stmt)).scalar_one())

    async def sales_totals(self, *, since: datetime | None = None) -> tuple[int, int]:
        """``(sales_count, revenue_cents)`` for the tenant."""

        stmt = select(func.count(Sale.id), func.coalesce(func.sum(Sale.amount_cents), 0)).where(
            Sale.restaurant_id == self._tenant_id,
        )
        if since is not None:
            stmt = stmt.where(Sale.created_at >= since)
        count, revenue = (await self._db.execute(stmt)).one()
        return int(count), int(revenue)

    async def list_sales(
        self,
        *,
        since: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Row]:
        """Sales joined with the customer and the role of the staff member who rang them up."""

        stmt = (
            select(Sale, Customer.name, Customer.card_number, RestaurantStaff.role)
            .join(Customer, Customer.id == Sale.customer_id)
            .outerjoin(RestaurantStaff, RestaurantStaff.id == Sale.staff_id)
            .where(Sale.restaurant_id == self._tenant_id)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .offset(offset)
        )
        if since is not None:
            stmt = stmt.where(Sale.created_at >= since)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return list(result.all())

    def _ledger_activity_filters(self, since: datetime | None) -> list[Any]:
        conditions: list[Any] = [PointTransaction.restaurant_id == self._tenant_id]
        if since is not None:
            conditions.append(PointTransaction.created_at >= since)
        return conditions

    async def list_ledger_activity(
        self,
        *,
        since: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Row]:
        """Ledger entries of every customer, with the staff role behind earns and redemptions."""

        stmt = (
            select(PointTransaction, Customer.name, Customer.card_number, RestaurantStaff.role)
            .join(Customer, Customer.id == PointTransaction.customer_id)
            .outerjoin(
                Sale,
                and_(
                    Sale.id == PointTransaction.reference_id,
                    PointTransaction.transaction_type == PointTransactionTypeEnum.EARN,
                ),
            )
            .outerjoin(
                RewardRedemption,
                and_(
                    RewardRedemption.id == PointTransaction.reference_id,
                    PointTransaction.transaction_type == PointTransactionTypeEnum.REDEEM,
                ),
            )
            .outerjoin(
                RestaurantStaff,
                RestaurantStaff.id == func.coalesce(Sale.staff_id, RewardRedemption.staff_id),
            )
            .where(*self._ledger_activity_filters(since))
            .order_by(PointTransaction.created_at.desc(), PointTransaction.sequence.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return list(result.all())

    async def count_ledger_activity(self, *, since: datetime | None = None) -> int:
        stmt = select(func.count(PointTransaction.id)).where(*self._ledger_activity_filters(since))
        return int((await self._db.execute(stmt)).scalar_one())

    async def list_ranks(self) -> list[Rank]:
        stmt = (
            select(Rank)
            .where(Rank.restaurant_id == self._tenant_id)
            .order_by(Rank.sort_order.asc(), Rank.min_visits.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_rank(self, rank_id: UUID | None) -> Rank | None:
        if rank_id is None:
            return None
        stmt = select(Rank).where(Rank.id == rank_id, Rank.restaurant_id == self._tenant_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_entry_rank(self) -> Rank | None:
        """Return the entry tier (lowest ``sort_order``)."""

        stmt = (
            select(Rank)
            .where(Rank.restaurant_id == self._tenant_id)
            .order_by(Rank.sort_order.asc())
            .limit(1)
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_staff(
        self,
        *,
        staff_id: UUID | None = None,
        user_id: str | None = None,
    ) -> RestaurantStaff | None:
        if staff_id is None and not user_id:
            return None
        stmt = select(RestaurantStaff).where(
            RestaurantStaff.restaurant_id == self._tenant_id,
            RestaurantStaff.deleted_at.is_(None),
        )
        if staff_id is not None:
            stmt = stmt.where(RestaurantStaff.id == staff_id)
        if user_id:
            stmt = stmt.where(RestaurantStaff.user_id == user_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active_reward_configs(self) -> list[RewardConfig]:
        """Active rewards ordered cheapest first."""

        stmt = (
            select(RewardConfig)
            .where(
                RewardConfig.restaurant_id == self._tenant_id,
                RewardConfig.is_active.is_(True),
                RewardConfig.deleted_at.is_(None),
            )
            .order_by(RewardConfig.points_required.asc(), RewardConfig.created_at.asc())
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_active_reward_config(self, config_id: UUID) -> RewardConfig | None:
        stmt = select(RewardConfig).where(
            RewardConfig.id == config_id,
            RewardConfig.restaurant_id == self._tenant_id,
            RewardConfig.is_active.is_(True),
            RewardConfig.deleted_at.is_(None),
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_transactions(
        self,
        customer_id: UUID,
        *,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> Sequence[PointTransaction]:
        order = PointTransaction.sequence.desc() if newest_first else PointTransaction.sequence.asc()
        stmt = (
            select(PointTransaction)
            .where(
                PointTransaction.restaurant_id == self._tenant_id,
                PointTransaction.customer_id == customer_id,
            )
            .order_by(order)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())


__all__ = ["LoyaltyRepository", "MissingTenantError", "coerce_tenant_id", "coerce_uuid"]
