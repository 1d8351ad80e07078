"""Sales and the append-only points ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from revisit_api.db.base import Base, enum_values


class PointTransactionTypeEnum(str, Enum):
    """Kinds of balance changes recorded in the ledger."""

    EARN = "earn"
    REDEEM = "redeem"
    ADJUSTMENT = "adjustment"
    EXPIRY = "expiry"


class Sale(Base):
    """A purchase registered at the point of sale. Immutable once created."""

    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_sales_amount_cents"),
        CheckConstraint("points_earned >= 0", name="ck_sales_points_earned"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id = Column(UUID(as_uuid=True), ForeignKey("restaurant_staff.id"), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    points_earned = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="sales")


class PointTransaction(Base):
    """Ledger entry; ``balance_after`` is the authoritative running balance."""

    __tablename__ = "point_transactions"
    __table_args__ = (
        UniqueConstraint("customer_id", "sequence", name="uq_point_transactions_customer_sequence"),
        CheckConstraint("balance_after >= 0", name="ck_point_transactions_balance_after"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    points_delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    transaction_type = Column(
        SqlEnum(PointTransactionTypeEnum, name="point_transaction_type", values_callable=enum_values),
        nullable=False,
    )
    reference_id = Column(UUID(as_uuid=True), nullable=True)
    note = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="transactions")
