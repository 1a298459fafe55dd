from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.dependencies import rate_limit
from app.services.quota import check_quota

router = APIRouter(prefix="/ai", tags=["ai"])


class UsageResponse(BaseModel):
    analyses_used: int
    plans_used: int
    total: int
    max_free: int
    remaining: int
    can_use: bool


@router.get("/usage", response_model=UsageResponse)
async def get_usage(user_id: str = Depends(rate_limit)):
    info = await asyncio.to_thread(check_quota, user_id)
    return UsageResponse(
        remaining=max(0, info.max_free - info.total),
        **info._asdict(),
    )
