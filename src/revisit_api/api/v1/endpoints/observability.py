"""Observability endpoints for loyalty engine counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from revisit_api.api.dependencies.security import require_observability_api_key
from revisit_api.observability.loyalty import get_loyalty_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/loyalty",
    dependencies=[Depends(require_observability_api_key)],
    summary="Loyalty observability snapshot",
)
async def get_loyalty_snapshot() -> dict[str, object]:
    """Registrations, sales, redemptions and failures counted since process start."""
    return get_loyalty_store().snapshot().as_dict()
