from __future__ import annotations

import asyncio
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from app import db as db_module
from app.dependencies import (
    bad_request,
    conflict,
    gateway_error,
    limit_reached,
    not_found,
    rate_limit,
)
from app.models import Listing
from app.services.listings import (
    ListingValidationError,
    create_standalone_listings,
    delete_listing,
)
from app.services.quota import QuotaExceededError
from app.services.sessions import InvalidTransitionError

router = APIRouter(prefix="/listings", tags=["listings"])


class ListingResponse(BaseModel):
    id: int
    item_id: int
    lang: str
    title: str
    body: str
    hashtags: list[str]
    channels: list[str]
    tone: str | None = None
    created_at: datetime


def listing_response(row: Listing) -> ListingResponse:
    return ListingResponse(
        id=row.id,
        item_id=row.item_id,
        lang=row.lang,
        title=row.title,
        body=row.body,
        hashtags=list(row.hashtags or []),
        channels=list(row.channels or []),
        tone=row.tone,
        created_at=row.created_at,
    )


class ListingRequest(BaseModel):
    title: str | None = None
    condition: str | None = None
    languages: list[str] = Field(default_factory=lambda: ["en"])
    tone: str = "friendly"
    features: list[str] = Field(default_factory=list)
    channels: list[str] = Field(default_factory=list)


class StandaloneListingRequest(ListingRequest):
    title: str
    condition: str
    session_id: int | None = None


class StandaloneListingResponse(BaseModel):
    item_id: int
    listings: list[ListingResponse]


async def run_listing_call(func, *args, **kwargs):
    """Run a listing service call and translate its failures."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except ListingValidationError as exc:
        raise bad_request(exc) from exc
    except InvalidTransitionError as exc:
        raise conflict(exc) from exc
    except QuotaExceededError as exc:
        raise limit_reached(str(exc)) from exc
    except (TimeoutError, ValueError, RuntimeError) as exc:
        raise gateway_error(exc) from exc


@router.post("", response_model=StandaloneListingResponse, status_code=201)
async def create_listing(
    body: StandaloneListingRequest,
    user_id: str = Depends(rate_limit),
):
    result = await run_listing_call(
        create_standalone_listings,
        user_id,
        title=body.title,
        condition=body.condition,
        features=body.features,
        languages=body.languages,
        tone=body.tone,
        channels=body.channels,
        session_id=body.session_id,
    )
    if result is None:
        raise not_found("Session not found")
    item_id, rows = result
    return StandaloneListingResponse(
        item_id=item_id, listings=[listing_response(row) for row in rows]
    )


@router.delete("/{listing_id}", status_code=204)
async def remove_listing(listing_id: int, user_id: str = Depends(rate_limit)):
    def _delete() -> bool:
        with db_module.SessionLocal() as db:
            return delete_listing(db, user_id=user_id, listing_id=listing_id)

    if not await asyncio.to_thread(_delete):
        raise not_found("Listing not found")
    return Response(status_code=204)
