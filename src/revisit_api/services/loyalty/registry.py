"""Customer enrollment and public card lookups."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.core.settings import settings
from revisit_api.domain import card_number as card_codec
from revisit_api.models.customer import Customer
from revisit_api.observability.loyalty import get_loyalty_store
from revisit_api.observability.tracing import loyalty_span
from revisit_api.services.loyalty.card_sequence import CardSequenceAllocator
from revisit_api.services.loyalty.ledger import PointLedger
from revisit_api.services.loyalty.ranks import RankInfo, RankResolver
from revisit_api.services.loyalty.repository import LoyaltyRepository, MissingTenantError
from revisit_api.services.loyalty.results import LoyaltyErrorCode, LoyaltyFailure, RegistrationResult

MIN_PHONE_DIGITS = 10
MAX_PHONE_DIGITS = 11
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: object) -> str:
    if not isinstance(phone, str):
        return ""
    return _NON_DIGITS.sub("", phone)


def validate_registration(name: object, phone: object) -> dict[str, str]:
    errors: dict[str, str] = {}
    clean_name = name.strip() if isinstance(name, str) else ""
    if not MIN_NAME_LENGTH <= len(clean_name) <= MAX_NAME_LENGTH:
        errors["name"] = f"Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters"
    digits = normalize_phone(phone)
    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        errors["phone"] = f"Phone must have {MIN_PHONE_DIGITS} or {MAX_PHONE_DIGITS} digits"
    return errors


@dataclass(frozen=True)
class LedgerLine:
    sequence: int
    points_delta: int
    balance_after: int
    transaction_type: str
    note: Optional[str]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class CardSnapshot:
    """What a customer sees when opening their card page."""

    customer_name: str
    card_number: str
    points_balance: int
    visit_count: int
    total_spend_cents: int
    rank: RankInfo
    restaurant_name: str
    program_name: Optional[str]
    reward_type: str
    next_rank_name: Optional[str] = None
    visits_to_next_rank: Optional[int] = None
    history: list[LedgerLine] = field(default_factory=list)


class CustomerRegistry:
    """Idempotent enrollment keyed by (restaurant, phone)."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._resolver = RankResolver()

    async def register(
        self,
        tenant_id: UUID | str | None,
        name: str,
        phone: str,
    ) -> RegistrationResult | LoyaltyFailure:
        """Enroll ``phone`` at the tenant, or return the existing membership."""

        errors = validate_registration(name, phone)
        if errors:
            return LoyaltyFailure.of(LoyaltyErrorCode.VALIDATION_ERROR, **errors)

        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return self._fail(LoyaltyErrorCode.TENANT_NOT_FOUND)

        clean_name = name.strip()
        digits = normalize_phone(phone)
        with loyalty_span("loyalty.register", restaurant_id=repository.tenant_id):
            logger.info(
                "Registering loyalty customer",
                restaurant_id=str(repository.tenant_id),
                phone=digits,
            )
            try:
                return await self._register(repository, clean_name, digits)
            except SQLAlchemyError:
                await self._db.rollback()
                logger.exception("Customer registration failed", restaurant_id=str(repository.tenant_id))
                raise

    async def _register(
        self,
        repository: LoyaltyRepository,
        name: str,
        phone: str,
    ) -> RegistrationResult | LoyaltyFailure:
        restaurant = await repository.get_restaurant()
        if restaurant is None:
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.TENANT_NOT_FOUND)

        existing = await repository.get_customer_by_phone(phone)
        if existing is not None:
            result = await self._as_result(repository, existing, is_existing=True)
            await self._db.rollback()
            get_loyalty_store().record_registration("existing")
            return result

        try:
            sequence = await CardSequenceAllocator(repository).next_value()
            number = card_codec.encode(sequence)
        except card_codec.CardNumberCapacityError:
            await self._db.rollback()
            return self._fail(LoyaltyErrorCode.CAPACITY_EXHAUSTED)

        entry_rank = await repository.get_entry_rank()
        customer = Customer(
            name=name,
            phone=phone,
            card_number=number,
            points_balance=0,
            visit_count=0,
            total_spend=0,
            ledger_sequence=0,
            current_rank_id=entry_rank.id if entry_rank is not None else None,
        )
        repository.add(customer)
        try:
            await self._db.flush()
        except IntegrityError:
            await self._db.rollback()
            logger.warning(
                "Detected race when registering loyalty customer",
                restaurant_id=str(repository.tenant_id),
                phone=phone,
            )
            winner = await repository.get_customer_by_phone(phone)
            if winner is None:
                raise
            result = await self._as_result(repository, winner, is_existing=True)
            await self._db.rollback()
            get_loyalty_store().record_registration("race")
            return result

        await self._db.commit()
        get_loyalty_store().record_registration("new")
        logger.info(
            "Registered loyalty customer",
            restaurant_id=str(repository.tenant_id),
            customer_id=str(customer.id),
            card_number=number,
        )
        return RegistrationResult(
            card_number=number,
            customer_name=name,
            rank_name=entry_rank.name if entry_rank is not None else settings.default_rank_name,
            is_existing=False,
        )

    async def _as_result(
        self,
        repository: LoyaltyRepository,
        customer: Customer,
        *,
        is_existing: bool,
    ) -> RegistrationResult:
        rank = await repository.get_rank(customer.current_rank_id)
        return RegistrationResult(
            card_number=customer.card_number,
            customer_name=customer.name,
            rank_name=rank.name if rank is not None else settings.default_rank_name,
            is_existing=is_existing,
        )

    async def get_card(
        self,
        tenant_id: UUID | str | None,
        card_number: str,
        *,
        history_limit: int | None = None,
    ) -> CardSnapshot | None:
        """Balance, rank progress and recent ledger entries for one card."""

        if not card_codec.validate(card_number):
            return None
        try:
            repository = LoyaltyRepository(self._db, tenant_id)
        except MissingTenantError:
            return None

        restaurant = await repository.get_restaurant()
        if restaurant is None:
            return None
        customer = await repository.get_customer_by_card(card_number)
        if customer is None:
            return None

        ranks = await repository.list_ranks()
        current = next((rank for rank in ranks if rank.id == customer.current_rank_id), None)
        upcoming = self._resolver.next_rank(ranks, current)
        remaining = None
        if upcoming is not None:
            remaining = max(0, upcoming.min_visits - customer.visit_count)

        limit = history_limit or settings.card_history_limit
        entries = await PointLedger(repository).history(customer, limit=limit)
        history = [
            LedgerLine(
                sequence=entry.sequence,
                points_delta=entry.points_delta,
                balance_after=entry.balance_after,
                transaction_type=entry.transaction_type.value,
                note=entry.note,
                created_at=entry.created_at,
            )
            for entry in entries
        ]
        return CardSnapshot(
            customer_name=customer.name,
            card_number=customer.card_number,
            points_balance=customer.points_balance,
            visit_count=customer.visit_count,
            total_spend_cents=customer.total_spend,
            rank=self._resolver.resolve(current),
            restaurant_name=restaurant.name,
            program_name=restaurant.program_name,
            reward_type=restaurant.reward_type.value,
            next_rank_name=upcoming.name if upcoming is not None else None,
            visits_to_next_rank=remaining,
            history=history,
        )

    @staticmethod
    def _fail(code: LoyaltyErrorCode) -> LoyaltyFailure:
        get_loyalty_store().record_failure(code.value)
        return LoyaltyFailure.of(code)


__all__ = [
    "CardSnapshot",
    "CustomerRegistry",
    "LedgerLine",
    "normalize_phone",
    "validate_registration",
]
