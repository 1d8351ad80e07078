"""Tenant (restaurant) models: program settings, ranks, staff and card sequence."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from revisit_api.db.base import Base, enum_values


class RewardTypeEnum(str, Enum):
    """Mutually exclusive reward strategies a restaurant can run."""

    CASHBACK = "cashback"
    FREE_PRODUCT = "free_product"
    PROGRESSIVE_DISCOUNT = "progressive_discount"


class StaffRoleEnum(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"


class Restaurant(Base):
    """A tenant: one restaurant's isolated loyalty program."""

    __tablename__ = "restaurants"
    __table_args__ = (
        CheckConstraint("earn_rate >= 1 AND earn_rate <= 100", name="ck_restaurants_earn_rate"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(120), nullable=False)
    slug = Column(String(80), nullable=False, unique=True, index=True)
    program_name = Column(String(100), nullable=True)
    earn_rate = Column(Integer, nullable=False, default=1, server_default="1")
    reward_type = Column(
        SqlEnum(RewardTypeEnum, name="reward_type", values_callable=enum_values),
        nullable=False,
        default=RewardTypeEnum.CASHBACK,
        server_default=RewardTypeEnum.CASHBACK.value,
    )
    point_expiry_days = Column(Integer, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    ranks = relationship("Rank", back_populates="restaurant", order_by="Rank.sort_order")
    staff = relationship("RestaurantStaff", back_populates="restaurant")


class Rank(Base):
    """Loyalty tier unlocked by visit count."""

    __tablename__ = "ranks"
    __table_args__ = (
        CheckConstraint("min_visits >= 0", name="ck_ranks_min_visits"),
        CheckConstraint("multiplier >= 0.1 AND multiplier <= 10", name="ck_ranks_multiplier"),
        CheckConstraint("discount_pct >= 0 AND discount_pct <= 100", name="ck_ranks_discount_pct"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(50), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0, server_default="0")
    min_visits = Column(Integer, nullable=False, default=0, server_default="0")
    multiplier = Column(Numeric(4, 2), nullable=False, default=1, server_default="1")
    discount_pct = Column(Numeric(5, 2), nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    restaurant = relationship("Restaurant", back_populates="ranks")


class RestaurantStaff(Base):
    """Staff membership linking an upstream auth user to a restaurant."""

    __tablename__ = "restaurant_staff"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "user_id", name="uq_restaurant_staff_user"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(
        SqlEnum(StaffRoleEnum, name="staff_role", values_callable=enum_values),
        nullable=False,
        default=StaffRoleEnum.MANAGER,
        server_default=StaffRoleEnum.MANAGER.value,
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    restaurant = relationship("Restaurant", back_populates="staff")


class CardNumberSequence(Base):
    """Persistent per-restaurant counter backing card number issuance."""

    __tablename__ = "card_number_sequences"

    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        primary_key=True,
    )
    last_value = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
