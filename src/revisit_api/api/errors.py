"""Translate loyalty failures into HTTP errors."""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException, status

from revisit_api.services.loyalty.results import LoyaltyErrorCode, LoyaltyFailure

_STATUS_BY_CODE: dict[LoyaltyErrorCode, int] = {
    LoyaltyErrorCode.NOT_AUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    LoyaltyErrorCode.TENANT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LoyaltyErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_CONTENT,
    LoyaltyErrorCode.INVALID_CARD_FORMAT: status.HTTP_422_UNPROCESSABLE_CONTENT,
    LoyaltyErrorCode.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_CONTENT,
    LoyaltyErrorCode.INVALID_STAFF_ID: status.HTTP_422_UNPROCESSABLE_CONTENT,
    LoyaltyErrorCode.CUSTOMER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LoyaltyErrorCode.REWARD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    LoyaltyErrorCode.INSUFFICIENT_POINTS: status.HTTP_409_CONFLICT,
    LoyaltyErrorCode.CAPACITY_EXHAUSTED: status.HTTP_409_CONFLICT,
}


def failure_detail(code: LoyaltyErrorCode, message: str, field_errors: dict[str, str] | None = None) -> dict[str, object]:
    detail: dict[str, object] = {"error": code.value, "message": message}
    if field_errors:
        detail["fieldErrors"] = dict(field_errors)
    return detail


def raise_for_failure(failure: LoyaltyFailure) -> NoReturn:
    raise HTTPException(
        status_code=_STATUS_BY_CODE.get(failure.code, status.HTTP_400_BAD_REQUEST),
        detail=failure_detail(failure.code, failure.message, failure.field_errors),
    )


def not_authenticated(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=failure_detail(LoyaltyErrorCode.NOT_AUTHENTICATED, message),
    )


__all__ = ["failure_detail", "not_authenticated", "raise_for_failure"]
