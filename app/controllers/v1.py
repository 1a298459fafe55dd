from fastapi import APIRouter

from . import challenges, items, listings, sessions, usage

router = APIRouter(prefix="/v1")
router.include_router(sessions.router)
router.include_router(items.router)
router.include_router(listings.router)
router.include_router(challenges.router)
# free AI quota snapshot
router.include_router(usage.router)
