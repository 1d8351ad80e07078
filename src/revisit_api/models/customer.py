"""Loyalty member model."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from revisit_api.db.base import Base


class Customer(Base):
    """Loyalty member enrolled at a single restaurant."""

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "card_number", name="uq_customers_restaurant_card_number"),
        Index(
            "uq_customers_restaurant_phone_active",
            "restaurant_id",
            "phone",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        CheckConstraint("points_balance >= 0", name="ck_customers_points_balance"),
        CheckConstraint("visit_count >= 0", name="ck_customers_visit_count"),
        CheckConstraint("total_spend >= 0", name="ck_customers_total_spend"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    phone = Column(String(11), nullable=False)
    card_number = Column(String(7), nullable=False)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    visit_count = Column(Integer, nullable=False, default=0, server_default="0")
    total_spend = Column(BigInteger, nullable=False, default=0, server_default="0")
    current_rank_id = Column(
        UUID(as_uuid=True),
        ForeignKey("ranks.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Ordinal of the latest ledger entry; bumped in the same statement as the balance.
    ledger_sequence = Column(Integer, nullable=False, default=0, server_default="0")
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    current_rank = relationship("Rank")
    transactions = relationship("PointTransaction", back_populates="customer", order_by="PointTransaction.sequence")
    sales = relationship("Sale", back_populates="customer")
    redemptions = relationship("RewardRedemption", back_populates="customer")
