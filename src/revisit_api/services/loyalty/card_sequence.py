"""Per-restaurant card number sequence backed by a counter row."""

from __future__ import annotations

from loguru import logger
from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite

from revisit_api.core.settings import settings
from revisit_api.domain.card_number import CardNumberCapacityError
from revisit_api.models.restaurant import CardNumberSequence
from revisit_api.services.loyalty.repository import LoyaltyRepository

_UPSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CardSequenceAllocator:
    """Hands out the next enrollment sequence for the repository's tenant.

    The increment is one ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
    statement, so concurrent registrations (in this or another process) never
    receive the same value. The counter lives in the caller's transaction: a
    rolled back registration does not consume a number.
    """

    def __init__(self, repository: LoyaltyRepository, *, ceiling: int | None = None) -> None:
        self._repository = repository
        self._ceiling = ceiling or settings.card_sequence_ceiling

    async def next_value(self) -> int:
        session = self._repository.session
        dialect_name = session.bind.dialect.name if session.bind is not None else "postgresql"
        try:
            insert = _UPSERT_BUILDERS[dialect_name]
        except KeyError as error:
            raise RuntimeError(f"Card sequence upsert unsupported for dialect {dialect_name!r}") from error

        table = CardNumberSequence.__table__
        stmt = (
            insert(table)
            .values(restaurant_id=self._repository.tenant_id, last_value=1)
            .on_conflict_do_update(
                index_elements=[table.c.restaurant_id],
                set_={"last_value": table.c.last_value + 1, "updated_at": func.now()},
            )
            .returning(table.c.last_value)
        )
        result = await session.execute(stmt)
        value = int(result.scalar_one())

        if value > self._ceiling:
            logger.error(
                "Card number capacity exhausted",
                restaurant_id=str(self._repository.tenant_id),
                sequence=value,
                ceiling=self._ceiling,
            )
            raise CardNumberCapacityError(value)
        return value


__all__ = ["CardSequenceAllocator"]
