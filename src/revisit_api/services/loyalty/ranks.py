"""Rank (tier) resolution and wholesale rank replacement."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.core.settings import settings
from revisit_api.models.customer import Customer
from revisit_api.models.restaurant import Rank
from revisit_api.services.loyalty.repository import LoyaltyRepository, MissingTenantError
from revisit_api.services.loyalty.results import LoyaltyErrorCode, LoyaltyFailure

NO_RANK_NAME = settings.no_rank_name
MIN_MULTIPLIER = Decimal("0.1")
MAX_MULTIPLIER = Decimal("10")
MAX_RANK_NAME_LENGTH = 50


@dataclass(frozen=True)
class RankInfo:
    """Display and earning parameters of a customer's current rank."""

    rank_id: Optional[UUID]
    name: str
    multiplier: Decimal
    discount_pct: Decimal
    sort_order: Optional[int]
    min_visits: int = 0


@dataclass(frozen=True)
class RankInput:
    """One row of a rank replacement request."""

    name: str
    min_visits: Any
    multiplier: Any = Decimal("1")
    discount_pct: Any = Decimal("0")


class RankResolver:
    """Maps rank rows (or their absence) onto :class:`RankInfo`."""

    def __init__(self, *, no_rank_name: str | None = None) -> None:
        self._no_rank_name = no_rank_name or NO_RANK_NAME

    def resolve(self, rank: Rank | None) -> RankInfo:
        if rank is None:
            return RankInfo(
                rank_id=None,
                name=self._no_rank_name,
                multiplier=Decimal("1"),
                discount_pct=Decimal("0"),
                sort_order=None,
            )
        return RankInfo(
            rank_id=rank.id,
            name=rank.name,
            multiplier=Decimal(str(rank.multiplier)),
            discount_pct=Decimal(str(rank.discount_pct)),
            sort_order=rank.sort_order,
            min_visits=rank.min_visits,
        )

    @staticmethod
    def target_rank_for_visits(ranks: Iterable[Rank], visit_count: int) -> Rank | None:
        """Highest rank unlocked by ``visit_count``; ties go to the higher ``sort_order``."""

        eligible = [rank for rank in ranks if rank.min_visits <= visit_count]
        if not eligible:
            return None
        return max(eligible, key=lambda rank: (rank.min_visits, rank.sort_order))

    @staticmethod
    def next_rank(ranks: Iterable[Rank], current: Rank | None) -> Rank | None:
        ordered = sorted(ranks, key=lambda rank: (rank.sort_order, rank.min_visits))
        if current is None:
            return ordered[0] if ordered else None
        for rank in ordered:
            if rank.sort_order > current.sort_order:
                return rank
        return None

    @staticmethod
    def outranks(candidate: Rank | None, current: Rank | None) -> bool:
        """True when moving from ``current`` to ``candidate`` is a promotion."""

        if candidate is None:
            return False
        if current is None:
            return True
        return candidate.sort_order > current.sort_order


def _parse_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def validate_rank_inputs(ranks: Sequence[RankInput]) -> dict[str, str]:
    """Return field errors keyed ``ranks.<index>.<field>`` (empty when valid)."""

    errors: dict[str, str] = {}
    if not ranks:
        errors["ranks"] = "At least one rank is required"
        return errors

    for index, rank in enumerate(ranks):
        prefix = f"ranks.{index}"
        name = (rank.name or "").strip() if isinstance(rank.name, str) else ""
        if not name or len(name) > MAX_RANK_NAME_LENGTH:
            errors[f"{prefix}.name"] = f"Name must be between 1 and {MAX_RANK_NAME_LENGTH} characters"

        if isinstance(rank.min_visits, bool) or not isinstance(rank.min_visits, int) or rank.min_visits < 0:
            errors[f"{prefix}.min_visits"] = "Minimum visits must be a whole number of at least 0"

        multiplier = _parse_decimal(rank.multiplier)
        if multiplier is None or multiplier < MIN_MULTIPLIER or multiplier > MAX_MULTIPLIER:
            errors[f"{prefix}.multiplier"] = "Multiplier must be between 0.1 and 10"

        discount = _parse_decimal(rank.discount_pct)
        if discount is None or discount < 0 or discount > 100:
            errors[f"{prefix}.discount_pct"] = "Discount must be between 0 and 100"

    if not any(key.endswith(".min_visits") for key in errors):
        lowest = min(rank.min_visits for rank in ranks)
        if sum(1 for rank in ranks if rank.min_visits == lowest) > 1:
            errors["ranks"] = "Exactly one rank must hold the lowest minimum visits"
    return errors


class RankSettingsService:
    """Owner-facing rank configuration."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_ranks(self, tenant_id: UUID | str | None) -> list[Rank]:
        repository = LoyaltyRepository(self._db, tenant_id)
        return await repository.list_ranks()

    async def replace_ranks(
        self,
        tenant_id: UUID | str | None,
        ranks: Sequence[RankInput],
    ) -> list[Rank] | LoyaltyFailure:
        """Swap the tenant's ranks for ``ranks`` and re-point every customer.

        Ranks are stored ordered by ``min_visits`` with ``sort_order`` equal to
        their position. The whole swap is one transaction.
        """

        errors = validate_rank_inputs(ranks)
        if errors:
            return LoyaltyFailure.of(LoyaltyErrorCode.VALIDATION_ERROR, **errors)

        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return LoyaltyFailure.of(LoyaltyErrorCode.NOT_AUTHENTICATED)

        try:
            restaurant = await repository.get_restaurant()
            if restaurant is None:
                await self._db.rollback()
                return LoyaltyFailure.of(LoyaltyErrorCode.TENANT_NOT_FOUND)

            tenant = repository.tenant_id
            await self._db.execute(
                update(Customer)
                .where(Customer.restaurant_id == tenant)
                .values(current_rank_id=None)
                .execution_options(synchronize_session=False)
            )
            await self._db.execute(
                delete(Rank)
                .where(Rank.restaurant_id == tenant)
                .execution_options(synchronize_session=False)
            )

            ordered = sorted(ranks, key=lambda item: item.min_visits)
            created: list[Rank] = []
            for index, item in enumerate(ordered):
                rank = Rank(
                    name=item.name.strip(),
                    sort_order=index,
                    min_visits=item.min_visits,
                    multiplier=_parse_decimal(item.multiplier),
                    discount_pct=_parse_decimal(item.discount_pct),
                )
                repository.add(rank)
                created.append(rank)
            await self._db.flush()

            # Enrollment grants the entry tier, so nobody falls below it.
            entry_rank, *higher = created
            await self._db.execute(
                update(Customer)
                .where(Customer.restaurant_id == tenant, Customer.deleted_at.is_(None))
                .values(current_rank_id=entry_rank.id)
                .execution_options(synchronize_session=False)
            )
            # Ascending pass: the last matching rank wins for each customer.
            for rank in higher:
                await self._db.execute(
                    update(Customer)
                    .where(
                        Customer.restaurant_id == tenant,
                        Customer.deleted_at.is_(None),
                        Customer.visit_count >= rank.min_visits,
                    )
                    .values(current_rank_id=rank.id)
                    .execution_options(synchronize_session=False)
                )
            await self._db.commit()
        except SQLAlchemyError:
            await self._db.rollback()
            logger.exception("Rank replacement failed", restaurant_id=str(repository.tenant_id))
            raise

        logger.info(
            "Replaced restaurant ranks",
            restaurant_id=str(repository.tenant_id),
            count=len(created),
            names=[rank.name for rank in created],
        )
        return created


__all__ = [
    "NO_RANK_NAME",
    "RankInfo",
    "RankInput",
    "RankResolver",
    "RankSettingsService",
    "validate_rank_inputs",
]
