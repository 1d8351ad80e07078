"""Point-of-sale flow: read-only preview and the atomic sale commit."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.core.settings import settings
from revisit_api.domain import card_number as card_codec
from revisit_api.models.ledger import PointTransactionTypeEnum, Sale
from revisit_api.observability.loyalty import get_loyalty_store
from revisit_api.observability.tracing import loyalty_span
from revisit_api.services.loyalty.ledger import PointLedger
from revisit_api.services.loyalty.ranks import RankResolver
from revisit_api.services.loyalty.repository import LoyaltyRepository, MissingTenantError, coerce_uuid
from revisit_api.services.loyalty.results import (
    LoyaltyErrorCode,
    LoyaltyFailure,
    SalePreview,
    SaleResult,
)

_CENT = Decimal("1")


def parse_amount_cents(amount: Any, *, maximum: Decimal | None = None) -> int | None:
    """Convert a major-unit amount to cents (half-up), or ``None`` when out of range."""

    if isinstance(amount, bool) or amount is None:
        return None
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    ceiling = maximum if maximum is not None else settings.max_sale_amount
    if value <= 0 or value > ceiling:
        return None
    cents = int((value * 100).quantize(_CENT, rounding=ROUND_HALF_UP))
    return cents if cents > 0 else None


def calculate_points(amount_cents: int, earn_rate: int, multiplier: Decimal | float | int) -> int:
    """Points for a purchase: major units x earn rate x rank multiplier, rounded half-up."""

    raw = Decimal(amount_cents) / 100 * Decimal(earn_rate) * Decimal(str(multiplier))
    return int(raw.quantize(_CENT, rounding=ROUND_HALF_UP))


class SaleTransactionEngine:
    """Registers purchases against loyalty cards."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._resolver = RankResolver()

    async def lookup(
        self,
        tenant_id: UUID | str | None,
        staff_id: UUID | str | None,
        card_number: str,
        amount: Any,
    ) -> SalePreview | LoyaltyFailure:
        """Preview the points a sale would earn. Takes no locks and writes nothing."""

        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        if not card_codec.validate(card_number):
            return self._fail(LoyaltyErrorCode.INVALID_CARD_FORMAT, card_number="Use the #0000-0 format")
        amount_cents = parse_amount_cents(amount)
        if amount_cents is None:
            return self._fail(LoyaltyErrorCode.INVALID_AMOUNT, amount="Enter a value between 0.01 and 99999.99")
        staff_uuid = coerce_uuid(staff_id)
        if staff_uuid is None:
            return self._fail(LoyaltyErrorCode.INVALID_STAFF_ID)

        restaurant = await repository.get_restaurant()
        if restaurant is None:
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        staff = await repository.get_active_staff(staff_id=staff_uuid)
        if staff is None:
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        customer = await repository.get_customer_by_card(card_number)
        if customer is None:
            return self._fail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND)

        rank = self._resolver.resolve(await repository.get_rank(customer.current_rank_id))
        preview = calculate_points(amount_cents, restaurant.earn_rate or 1, rank.multiplier)
        logger.debug(
            "Previewed sale",
            restaurant_id=str(repository.tenant_id),
            card_number=card_number,
            amount_cents=amount_cents,
            points_preview=preview,
        )
        return SalePreview(
            customer_name=customer.name,
            current_rank=rank.name,
            points_balance=customer.points_balance,
            points_preview=preview,
            card_number=customer.card_number,
            amount_cents=amount_cents,
            staff_id=staff_uuid,
        )

    async def register_sale(
        self,
        tenant_id: UUID | str | None,
        card_number: str,
        amount_cents: Any,
        staff_id: UUID | str | None,
    ) -> SaleResult | LoyaltyFailure:
        """Commit a sale: insert it, credit points, bump visits and promote if due.

        Every figure is recomputed from the locked customer row; nothing from the
        preview is trusted. All writes share one transaction.
        """

        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        if not card_codec.validate(card_number):
            return self._fail(LoyaltyErrorCode.INVALID_CARD_FORMAT, card_number="Use the #0000-0 format")
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents < 1:
            return self._fail(LoyaltyErrorCode.INVALID_AMOUNT, amount_cents="Must be a positive whole number")
        staff_uuid = coerce_uuid(staff_id)
        if staff_uuid is None:
            return self._fail(LoyaltyErrorCode.INVALID_STAFF_ID, staff_id="Must be a valid UUID")

        with loyalty_span("loyalty.sale", restaurant_id=repository.tenant_id, card_number=card_number):
            try:
                return await self._commit(repository, card_number, amount_cents, staff_uuid)
            except SQLAlchemyError:
                await self._db.rollback()
                logger.exception(
                    "Sale registration failed",
                    restaurant_id=str(repository.tenant_id),
                    card_number=card_number,
                )
                raise

    async def _commit(
        self,
        repository: LoyaltyRepository,
        card_number: str,
        amount_cents: int,
        staff_id: UUID,
    ) -> SaleResult | LoyaltyFailure:
        staff = await repository.get_active_staff(staff_id=staff_id)
        if staff is None:
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        customer = await repository.lock_customer_by_card(card_number)
        if customer is None:
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND)

        # Earn rate and tier are read under the customer lock.
        restaurant = await repository.get_restaurant()
        if restaurant is None:
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        ranks = await repository.list_ranks()
        current = next((rank for rank in ranks if rank.id == customer.current_rank_id), None)
        multiplier = self._resolver.resolve(current).multiplier
        points = calculate_points(amount_cents, restaurant.earn_rate or 1, multiplier)

        sale = Sale(
            id=uuid4(),
            customer_id=customer.id,
            staff_id=staff_id,
            amount_cents=amount_cents,
            points_earned=points,
        )
        repository.add(sale)
        await self._db.flush()

        entry = await PointLedger(repository).apply(
            customer,
            points,
            PointTransactionTypeEnum.EARN,
            reference_id=sale.id,
            visit_increment=1,
            spend_increment=amount_cents,
        )
        if entry is None:
            # The row was locked above; losing it here means it was soft-deleted underneath us.
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND)

        target = self._resolver.target_rank_for_visits(ranks, customer.visit_count)
        promoted = self._resolver.outranks(target, current) and await repository.promote_customer(
            customer,
            current.id if current is not None else None,
            target.id,
        )
        final_rank = target if promoted else current

        result = SaleResult(
            sale_id=sale.id,
            points_earned=points,
            new_balance=entry.balance_after,
            customer_name=customer.name,
            rank_promoted=promoted,
            new_rank_name=self._resolver.resolve(final_rank).name,
        )
        await self._db.commit()

        get_loyalty_store().record_sale(points, promoted=promoted)
        logger.info(
            "Committed sale",
            restaurant_id=str(repository.tenant_id),
            sale_id=str(sale.id),
            customer_id=str(customer.id),
            amount_cents=amount_cents,
            points_earned=points,
            balance_after=entry.balance_after,
        )
        if promoted:
            logger.info(
                "Promoted loyalty customer",
                restaurant_id=str(repository.tenant_id),
                customer_id=str(customer.id),
                rank=result.new_rank_name,
                visit_count=customer.visit_count,
            )
        return result

    @staticmethod
    def _fail(code: LoyaltyErrorCode, **field_errors: str) -> LoyaltyFailure:
        get_loyalty_store().record_failure(code.value)
        return LoyaltyFailure.of(code, **field_errors)


__all__ = [
    "SaleTransactionEngine",
    "calculate_points",
    "parse_amount_cents",
]
