"""Request scoping dependencies: the tenant and the acting staff member.

Both identities arrive as headers set by the trusted upstream layer that
resolves the public restaurant slug and authenticates the staff user.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from revisit_api.api.errors import failure_detail, not_authenticated
from revisit_api.core.settings import settings
from revisit_api.db.session import get_session
from revisit_api.models.restaurant import RestaurantStaff, StaffRoleEnum
from revisit_api.services.loyalty.repository import LoyaltyRepository, MissingTenantError, coerce_tenant_id
from revisit_api.services.loyalty.results import LoyaltyErrorCode


async def require_tenant(
    restaurant_id: str | None = Header(None, alias=settings.tenant_header),
) -> UUID:
    """Resolve the tenant identifier forwarded by the upstream middleware."""

    try:
        return coerce_tenant_id(restaurant_id)
    except MissingTenantError as error:
        raise not_authenticated("Missing restaurant context") from error


async def require_staff(
    tenant_id: UUID = Depends(require_tenant),
    staff_user: str | None = Header(None, alias=settings.staff_header),
    db: AsyncSession = Depends(get_session),
) -> RestaurantStaff:
    """Resolve the authenticated staff member of the current tenant."""

    if not staff_user:
        raise not_authenticated("Missing staff user context")

    staff = await LoyaltyRepository(db, tenant_id).get_active_staff(user_id=staff_user.strip())
    if staff is None:
        raise not_authenticated("Staff user is not a member of this restaurant")
    return staff


async def require_owner(staff: RestaurantStaff = Depends(require_staff)) -> RestaurantStaff:
    if staff.role != StaffRoleEnum.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=failure_detail(LoyaltyErrorCode.NOT_AUTHENTICATED, "Only the restaurant owner can access this resource"),
        )
    return staff


__all__ = ["require_owner", "require_staff", "require_tenant"]
