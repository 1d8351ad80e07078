"""SQLAlchemy models package."""

# Import all models
from .restaurant import (  # noqa: F401
    CardNumberSequence,
    Rank,
    Restaurant,
    RestaurantStaff,
    RewardTypeEnum,
    StaffRoleEnum,
)
from .customer import Customer  # noqa: F401
from .ledger import PointTransaction, PointTransactionTypeEnum, Sale  # noqa: F401
from .reward import RewardConfig, RewardRedemption  # noqa: F401
