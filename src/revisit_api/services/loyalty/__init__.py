"""Loyalty service exports."""

from .ledger import LedgerAudit, PointLedger  # noqa: F401
from .ranks import RankInfo, RankInput, RankResolver, RankSettingsService  # noqa: F401
from .redemptions import RedemptionEngine  # noqa: F401
from .registry import CardSnapshot, CustomerRegistry  # noqa: F401
from .reports import OwnerReportService  # noqa: F401
from .repository import LoyaltyRepository, MissingTenantError  # noqa: F401
from .results import LoyaltyErrorCode, LoyaltyFailure  # noqa: F401
from .sales import SaleTransactionEngine, calculate_points  # noqa: F401
