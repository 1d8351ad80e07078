from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LoyaltySnapshot:
    registrations: Dict[str, int]
    sales: Dict[str, int]
    redemptions: Dict[str, Dict[str, int]]
    failures: Dict[str, int]
    expirations: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "registrations": dict(self.registrations),
            "sales": dict(self.sales),
            "redemptions": {key: dict(value) for key, value in self.redemptions.items()},
            "failures": dict(self.failures),
            "expirations": dict(self.expirations),
        }


class LoyaltyObservabilityStore:
    """Collect loyalty engine counters for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._registrations: Dict[str, int] = defaultdict(int)
        self._sales: Dict[str, int] = defaultdict(int)
        self._redemption_counts: Dict[str, int] = defaultdict(int)
        self._redemption_points: Dict[str, int] = defaultdict(int)
        self._failures: Dict[str, int] = defaultdict(int)
        self._expirations: Dict[str, int] = defaultdict(int)

    def record_registration(self, outcome: str) -> None:
        """``outcome`` is one of ``new``, ``existing`` or ``race``."""

        with self._lock:
            self._registrations[outcome] += 1

    def record_sale(self, points_earned: int, *, promoted: bool) -> None:
        with self._lock:
            self._sales["committed"] += 1
            self._sales["points_earned"] += points_earned
            if promoted:
                self._sales["promotions"] += 1

    def record_redemption(self, reward_type: str, points_spent: int) -> None:
        with self._lock:
            self._redemption_counts[reward_type] += 1
            self._redemption_points[reward_type] += points_spent

    def record_failure(self, code: str) -> None:
        with self._lock:
            self._failures[code or "unknown"] += 1

    def record_expiration(self, customers: int, points: int) -> None:
        with self._lock:
            self._expirations["runs"] += 1
            self._expirations["customers"] += customers
            self._expirations["points"] += points

    def snapshot(self) -> LoyaltySnapshot:
        with self._lock:
            registrations = dict(self._registrations)
            sales = dict(self._sales)
            redemptions = {
                "by_type": dict(self._redemption_counts),
                "points_by_type": dict(self._redemption_points),
            }
            failures = dict(self._failures)
            expirations = dict(self._expirations)
        return LoyaltySnapshot(
            registrations=registrations,
            sales=sales,
            redemptions=redemptions,
            failures=failures,
            expirations=expirations,
        )

    def reset(self) -> None:
        with self._lock:
            self._registrations.clear()
            self._sales.clear()
            self._redemption_counts.clear()
            self._redemption_points.clear()
            self._failures.clear()
            self._expirations.clear()


_STORE = LoyaltyObservabilityStore()


def get_loyalty_store() -> LoyaltyObservabilityStore:
    return _STORE


__all__ = ["get_loyalty_store", "LoyaltyObservabilityStore", "LoyaltySnapshot"]
