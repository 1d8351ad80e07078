from fastapi import APIRouter

from .endpoints import (
    customers,
    health,
    observability,
    owner,
    pos,
    rewards,
    settings,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(customers.router)
router.include_router(pos.router)
router.include_router(rewards.router)
router.include_router(settings.router)
router.include_router(owner.router)
router.include_router(observability.router)
