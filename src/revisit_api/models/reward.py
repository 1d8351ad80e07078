"""Reward catalog and redemption audit records."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from revisit_api.db.base import Base, enum_values
from revisit_api.models.restaurant import RewardTypeEnum


class RewardConfig(Base):
    """Point-priced reward offered under the free product strategy."""

    __tablename__ = "reward_configs"
    __table_args__ = (
        CheckConstraint("points_required > 0", name="ck_reward_configs_points_required"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    restaurant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(100), nullable=False)
    points_required = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RewardRedemption(Base):
    """Immutable record of a reward handed out to a customer."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        CheckConstraint("points_spent >= 0", name="ck_reward_redemptions_points_spent"),
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
    reward_type = Column(
        SqlEnum(RewardTypeEnum, name="reward_type", values_callable=enum_values),
        nullable=False,
    )
    reward_config_id = Column(UUID(as_uuid=True), ForeignKey("reward_configs.id"), nullable=True)
    rank_id = Column(UUID(as_uuid=True), ForeignKey("ranks.id", ondelete="SET NULL"), nullable=True)
    # Tier as it stood at redemption time; survives rank replacement.
    rank_name = Column(String(50), nullable=True)
    discount_pct = Column(Numeric(5, 2), nullable=True)
    points_spent = Column(Integer, nullable=False, default=0, server_default="0")
    credit_amount = Column(Integer, nullable=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("restaurant_staff.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="redemptions")
    reward_config = relationship("RewardConfig")
