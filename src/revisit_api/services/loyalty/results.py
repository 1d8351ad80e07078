"""Typed outcomes returned by the loyalty engines.

Expected business failures (bad input, unknown card, not enough points) are
returned as :class:`LoyaltyFailure` values instead of raised, so callers can
render them without guarding every call. Only infrastructure errors propagate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional, Union
from uuid import UUID


class LoyaltyErrorCode(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    TENANT_NOT_FOUND = "tenant_not_found"
    VALIDATION_ERROR = "validation_error"
    INVALID_CARD_FORMAT = "invalid_card_format"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_STAFF_ID = "invalid_staff_id"
    CUSTOMER_NOT_FOUND = "customer_not_found"
    REWARD_NOT_FOUND = "reward_not_found"
    INSUFFICIENT_POINTS = "insufficient_points"
    CAPACITY_EXHAUSTED = "capacity_exhausted"


DEFAULT_MESSAGES: dict[LoyaltyErrorCode, str] = {
    LoyaltyErrorCode.NOT_AUTHENTICATED: "Session expired or staff member not recognised",
    LoyaltyErrorCode.TENANT_NOT_FOUND: "Restaurant not found",
    LoyaltyErrorCode.VALIDATION_ERROR: "Please fix the highlighted fields",
    LoyaltyErrorCode.INVALID_CARD_FORMAT: "Invalid card number format",
    LoyaltyErrorCode.INVALID_AMOUNT: "Amount must be between 0.01 and 99999.99",
    LoyaltyErrorCode.INVALID_STAFF_ID: "Invalid staff identifier",
    LoyaltyErrorCode.CUSTOMER_NOT_FOUND: "Card not found",
    LoyaltyErrorCode.REWARD_NOT_FOUND: "Reward not found",
    LoyaltyErrorCode.INSUFFICIENT_POINTS: "Not enough points for this redemption",
    LoyaltyErrorCode.CAPACITY_EXHAUSTED: "Card number capacity reached for this restaurant",
}


@dataclass(frozen=True)
class LoyaltyFailure:
    """A business failure surfaced to the caller as data."""

    code: LoyaltyErrorCode
    message: str
    field_errors: dict[str, str] = field(default_factory=dict)

    ok = False

    @classmethod
    def of(cls, code: LoyaltyErrorCode, message: str | None = None, **field_errors: str) -> "LoyaltyFailure":
        return cls(code=code, message=message or DEFAULT_MESSAGES[code], field_errors=dict(field_errors))


@dataclass(frozen=True)
class RegistrationResult:
    card_number: str
    customer_name: str
    rank_name: str
    is_existing: bool

    ok = True


@dataclass(frozen=True)
class SalePreview:
    """Display hint for the staff member; never trusted by the commit step."""

    customer_name: str
    current_rank: str
    points_balance: int
    points_preview: int
    card_number: str
    amount_cents: int
    staff_id: UUID

    ok = True


@dataclass(frozen=True)
class SaleResult:
    sale_id: UUID
    points_earned: int
    new_balance: int
    customer_name: str
    rank_promoted: bool
    new_rank_name: str

    ok = True


@dataclass(frozen=True)
class CashbackRewardInfo:
    available_credit: int
    points_balance: int
    earn_rate: int
    type: Literal["cashback"] = "cashback"


@dataclass(frozen=True)
class FreeProductRewardInfo:
    available: bool
    points_balance: int
    reward_name: str = ""
    reward_id: Optional[UUID] = None
    points_required: int = 0
    type: Literal["free_product"] = "free_product"


@dataclass(frozen=True)
class ProgressiveDiscountRewardInfo:
    discount_pct: float
    rank_name: str
    type: Literal["progressive_discount"] = "progressive_discount"


@dataclass(frozen=True)
class NoRewardInfo:
    type: Literal["none"] = "none"


RewardInfo = Union[CashbackRewardInfo, FreeProductRewardInfo, ProgressiveDiscountRewardInfo, NoRewardInfo]


@dataclass(frozen=True)
class RedemptionResult:
    redemption_id: UUID
    reward_type: str
    new_balance: int
    points_spent: int
    credit_amount: Optional[int] = None
    discount_pct: Optional[float] = None

    ok = True


__all__ = [
    "CashbackRewardInfo",
    "DEFAULT_MESSAGES",
    "FreeProductRewardInfo",
    "LoyaltyErrorCode",
    "LoyaltyFailure",
    "NoRewardInfo",
    "ProgressiveDiscountRewardInfo",
    "RedemptionResult",
    "RegistrationResult",
    "RewardInfo",
    "SalePreview",
    "SaleResult",
]
