"""Reward availability checks and the atomic redemption commit."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.domain import card_number as card_codec
from revisit_api.models.customer import Customer
from revisit_api.models.ledger import PointTransactionTypeEnum
from revisit_api.models.restaurant import Restaurant, RewardTypeEnum
from revisit_api.models.reward import RewardRedemption
from revisit_api.observability.loyalty import get_loyalty_store
from revisit_api.observability.tracing import loyalty_span
from revisit_api.services.loyalty.ledger import PointLedger
from revisit_api.services.loyalty.ranks import RankResolver
from revisit_api.services.loyalty.repository import LoyaltyRepository, MissingTenantError, coerce_uuid
from revisit_api.services.loyalty.results import (
    CashbackRewardInfo,
    FreeProductRewardInfo,
    LoyaltyErrorCode,
    LoyaltyFailure,
    NoRewardInfo,
    ProgressiveDiscountRewardInfo,
    RedemptionResult,
    RewardInfo,
)

PROGRESSIVE_DISCOUNT_NOTE = "Desconto progressivo aplicado"


def _parse_reward_type(value: Any) -> RewardTypeEnum | None:
    if isinstance(value, RewardTypeEnum):
        return value
    try:
        return RewardTypeEnum(str(value))
    except ValueError:
        return None


class RedemptionEngine:
    """Checks and redeems rewards under the tenant's single reward strategy."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._resolver = RankResolver()

    async def check_reward(self, tenant_id: UUID | str | None, card_number: str) -> RewardInfo:
        """What the card can redeem right now. Read-only."""

        if not card_codec.validate(card_number):
            return NoRewardInfo()
        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return NoRewardInfo()

        restaurant = await repository.get_restaurant()
        if restaurant is None:
            return NoRewardInfo()
        customer = await repository.get_customer_by_card(card_number)
        if customer is None:
            return NoRewardInfo()

        balance = customer.points_balance
        if restaurant.reward_type == RewardTypeEnum.CASHBACK:
            earn_rate = restaurant.earn_rate or 1
            return CashbackRewardInfo(
                available_credit=balance // earn_rate,
                points_balance=balance,
                earn_rate=earn_rate,
            )

        if restaurant.reward_type == RewardTypeEnum.FREE_PRODUCT:
            for config in await repository.list_active_reward_configs():
                if config.points_required <= balance:
                    return FreeProductRewardInfo(
                        available=True,
                        points_balance=balance,
                        reward_name=config.name,
                        reward_id=config.id,
                        points_required=config.points_required,
                    )
            return FreeProductRewardInfo(available=False, points_balance=balance)

        rank = self._resolver.resolve(await repository.get_rank(customer.current_rank_id))
        return ProgressiveDiscountRewardInfo(discount_pct=float(rank.discount_pct), rank_name=rank.name)

    async def redeem(
        self,
        tenant_id: UUID | str | None,
        card_number: str,
        reward_type: Any,
        reward_config_id: UUID | str | None = None,
        staff_id: UUID | str | None = None,
    ) -> RedemptionResult | LoyaltyFailure:
        """Redeem a reward; the deduction and both audit rows commit together."""

        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return self._fail(LoyaltyErrorCode.NOT_AUTHENTICATED)
        requested = _parse_reward_type(reward_type)
        if requested is None:
            return self._fail(LoyaltyErrorCode.REWARD_NOT_FOUND)
        if not card_codec.validate(card_number):
            return self._fail(LoyaltyErrorCode.CUSTOMER_NOT_FOUND)
        staff_uuid = None
        if staff_id is not None:
            staff_uuid = coerce_uuid(staff_id)
            if staff_uuid is None:
                return self._fail(LoyaltyErrorCode.INVALID_STAFF_ID)

        with loyalty_span(
            "loyalty.redeem",
            restaurant_id=repository.tenant_id,
            card_number=card_number,
            reward_type=requested.value,
        ):
            try:
                return await self._commit(repository, card_number, requested, reward_config_id, staff_uuid)
            except SQLAlchemyError:
                await self._db.rollback()
                logger.exception(
                    "Redemption failed",
                    restaurant_id=str(repository.tenant_id),
                    card_number=card_number,
                )
                raise

    async def _commit(
        self,
        repository: LoyaltyRepository,
        card_number: str,
        reward_type: RewardTypeEnum,
        reward_config_id: UUID | str | None,
        staff_id: UUID | None,
    ) -> RedemptionResult | LoyaltyFailure:
        restaurant = await repository.get_restaurant()
        if restaurant is None:
            return await self._abort(LoyaltyErrorCode.NOT_AUTHENTICATED)
        if staff_id is not None and await repository.get_active_staff(staff_id=staff_id) is None:
            return await self._abort(LoyaltyErrorCode.NOT_AUTHENTICATED)
        if reward_type != restaurant.reward_type:
            return await self._abort(LoyaltyErrorCode.REWARD_NOT_FOUND)

        customer = await repository.lock_customer_by_card(card_number)
        if customer is None:
            return await self._abort(LoyaltyErrorCode.CUSTOMER_NOT_FOUND)
        await self._db.refresh(restaurant)

        if reward_type == RewardTypeEnum.PROGRESSIVE_DISCOUNT:
            return await self._redeem_discount(repository, customer, staff_id)
        return await self._redeem_points(repository, restaurant, customer, reward_type, reward_config_id, staff_id)

    async def _redeem_points(
        self,
        repository: LoyaltyRepository,
        restaurant: Restaurant,
        customer: Customer,
        reward_type: RewardTypeEnum,
        reward_config_id: UUID | str | None,
        staff_id: UUID | None,
    ) -> RedemptionResult | LoyaltyFailure:
        earn_rate = restaurant.earn_rate or 1
        config = None
        config_uuid = coerce_uuid(reward_config_id)
        if reward_config_id is not None or reward_type == RewardTypeEnum.FREE_PRODUCT:
            if config_uuid is None:
                return await self._abort(LoyaltyErrorCode.REWARD_NOT_FOUND)
            config = await repository.get_active_reward_config(config_uuid)
            if config is None:
                return await self._abort(LoyaltyErrorCode.REWARD_NOT_FOUND)

        if config is not None:
            cost = config.points_required
        else:
            cost = (customer.points_balance // earn_rate) * earn_rate
        credit = cost // earn_rate if reward_type == RewardTypeEnum.CASHBACK else None
        if cost <= 0:
            return await self._abort(LoyaltyErrorCode.INSUFFICIENT_POINTS)

        redemption_id = uuid4()
        entry = await PointLedger(repository).apply(
            customer,
            -cost,
            PointTransactionTypeEnum.REDEEM,
            reference_id=redemption_id,
            note=config.name if config is not None else None,
            require_sufficient=True,
        )
        if entry is None:
            logger.info(
                "Rejected redemption",
                restaurant_id=str(repository.tenant_id),
                customer_id=str(customer.id),
                reward_type=reward_type.value,
                cost=cost,
            )
            return await self._abort(LoyaltyErrorCode.INSUFFICIENT_POINTS)

        repository.add(
            RewardRedemption(
                id=redemption_id,
                customer_id=customer.id,
                reward_type=reward_type,
                reward_config_id=config.id if config is not None else None,
                points_spent=cost,
                credit_amount=credit,
                staff_id=staff_id,
            )
        )
        result = RedemptionResult(
            redemption_id=redemption_id,
            reward_type=reward_type.value,
            new_balance=entry.balance_after,
            points_spent=cost,
            credit_amount=credit,
        )
        await self._db.commit()
        self._record(repository, customer, result)
        return result

    async def _redeem_discount(
        self,
        repository: LoyaltyRepository,
        customer: Customer,
        staff_id: UUID | None,
    ) -> RedemptionResult:
        rank = await repository.get_rank(customer.current_rank_id)
        info = self._resolver.resolve(rank)
        redemption_id = uuid4()
        # Zero-delta entry: the balance is untouched but the visit still appears in the ledger.
        entry = await PointLedger(repository).apply(
            customer,
            0,
            PointTransactionTypeEnum.REDEEM,
            reference_id=redemption_id,
            note=PROGRESSIVE_DISCOUNT_NOTE,
        )
        repository.add(
            RewardRedemption(
                id=redemption_id,
                customer_id=customer.id,
                reward_type=RewardTypeEnum.PROGRESSIVE_DISCOUNT,
                rank_id=info.rank_id,
                rank_name=info.name,
                discount_pct=info.discount_pct,
                points_spent=0,
                staff_id=staff_id,
            )
        )
        result = RedemptionResult(
            redemption_id=redemption_id,
            reward_type=RewardTypeEnum.PROGRESSIVE_DISCOUNT.value,
            new_balance=entry.balance_after if entry is not None else customer.points_balance,
            points_spent=0,
            discount_pct=float(info.discount_pct),
        )
        await self._db.commit()
        self._record(repository, customer, result)
        return result

    @staticmethod
    def _record(repository: LoyaltyRepository, customer: Customer, result: RedemptionResult) -> None:
        get_loyalty_store().record_redemption(result.reward_type, result.points_spent)
        logger.info(
            "Committed redemption",
            restaurant_id=str(repository.tenant_id),
            customer_id=str(customer.id),
            redemption_id=str(result.redemption_id),
            reward_type=result.reward_type,
            points_spent=result.points_spent,
            balance_after=result.new_balance,
        )

    async def _abort(self, code: LoyaltyErrorCode) -> LoyaltyFailure:
        await self._db.rollback()
        return self._fail(code)

    @staticmethod
    def _fail(code: LoyaltyErrorCode) -> LoyaltyFailure:
        get_loyalty_store().record_failure(code.value)
        return LoyaltyFailure.of(code)


__all__ = ["PROGRESSIVE_DISCOUNT_NOTE", "RedemptionEngine"]
