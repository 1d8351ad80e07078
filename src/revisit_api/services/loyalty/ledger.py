"""Append-only points ledger with single-statement balance updates."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm.attributes import set_committed_value

from revisit_api.models.customer import Customer
from revisit_api.models.ledger import PointTransaction, PointTransactionTypeEnum
from revisit_api.services.loyalty.repository import LoyaltyRepository


@dataclass(frozen=True)
class LedgerAudit:
    """Outcome of replaying a customer's ledger from zero."""

    customer_id: UUID
    entries: int
    replayed_balance: int
    stored_balance: int
    consistent: bool
    first_mismatch_sequence: int | None = None


class PointLedger:
    """Moves points for a customer and records the matching ledger entry.

    The balance, visit and spend counters and the ledger ordinal are changed in
    one ``UPDATE ... RETURNING`` statement, so the ``balance_after`` stored on
    the entry is the value the database produced under its row lock rather than
    a number computed from a possibly stale read.
    """

    def __init__(self, repository: LoyaltyRepository) -> None:
        self._repository = repository
        self._db = repository.session

    async def apply(
        self,
        customer: Customer,
        delta: int,
        transaction_type: PointTransactionTypeEnum,
        *,
        reference_id: UUID | None = None,
        note: str | None = None,
        require_sufficient: bool = False,
        visit_increment: int = 0,
        spend_increment: int = 0,
    ) -> PointTransaction | None:
        """Apply ``delta`` and append a ledger entry.

        Returns ``None`` (and changes nothing) when ``require_sufficient`` is set
        and the balance cannot cover a negative delta.
        """

        stmt = update(Customer).where(
            Customer.id == customer.id,
            Customer.restaurant_id == self._repository.tenant_id,
            Customer.deleted_at.is_(None),
        )
        if require_sufficient and delta < 0:
            stmt = stmt.where(Customer.points_balance >= -delta)

        stmt = (
            stmt.values(
                points_balance=Customer.points_balance + delta,
                ledger_sequence=Customer.ledger_sequence + 1,
                visit_count=Customer.visit_count + visit_increment,
                total_spend=Customer.total_spend + spend_increment,
            )
            .returning(
                Customer.points_balance,
                Customer.ledger_sequence,
                Customer.visit_count,
                Customer.total_spend,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            logger.info(
                "Ledger update rejected",
                customer_id=str(customer.id),
                delta=delta,
                transaction_type=transaction_type.value,
            )
            return None

        balance, sequence, visits, spend = row
        set_committed_value(customer, "points_balance", balance)
        set_committed_value(customer, "ledger_sequence", sequence)
        set_committed_value(customer, "visit_count", visits)
        set_committed_value(customer, "total_spend", spend)

        entry = PointTransaction(
            customer_id=customer.id,
            sequence=sequence,
            points_delta=delta,
            balance_after=balance,
            transaction_type=transaction_type,
            reference_id=reference_id,
            note=note,
        )
        self._repository.add(entry)
        await self._db.flush()
        logger.debug(
            "Recorded ledger entry",
            customer_id=str(customer.id),
            sequence=sequence,
            delta=delta,
            balance_after=balance,
            transaction_type=transaction_type.value,
        )
        return entry

    async def history(self, customer: Customer, *, limit: int = 10) -> list[PointTransaction]:
        """Latest entries, newest first."""

        return list(
            await self._repository.list_transactions(customer.id, newest_first=True, limit=max(1, limit))
        )

    async def verify(self, customer: Customer) -> LedgerAudit:
        """Replay ``points_delta`` in ledger order and compare every running balance."""

        entries = await self._repository.list_transactions(customer.id)
        running = 0
        mismatch: int | None = None
        for entry in entries:
            running += int(entry.points_delta)
            if mismatch is None and (running != int(entry.balance_after) or running < 0):
                mismatch = int(entry.sequence)

        stored = int(customer.points_balance or 0)
        consistent = mismatch is None and running == stored
        if not consistent:
            logger.warning(
                "Ledger replay mismatch",
                customer_id=str(customer.id),
                replayed_balance=running,
                stored_balance=stored,
                first_mismatch_sequence=mismatch,
            )
        return LedgerAudit(
            customer_id=customer.id,
            entries=len(entries),
            replayed_balance=running,
            stored_balance=stored,
            consistent=consistent,
            first_mismatch_sequence=mismatch,
        )


__all__ = ["LedgerAudit", "PointLedger"]
