from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from app import db as db_module
from app.controllers.listings import (
    ListingRequest,
    ListingResponse,
    listing_response,
    run_listing_call,
)
from app.dependencies import (
    bad_request,
    conflict,
    error_detail,
    gateway_error,
    limit_reached,
    not_found,
    rate_limit,
)
from app.models import ErrorCode, Item
from app.services import items as item_service
from app.services.classification import classify_item
from app.services.items import (
    ItemValidationError,
    PhotoTooLargeError,
    PhotoValidationError,
    UnsupportedPhotoTypeError,
)
from app.services.listings import create_item_listings, list_listings
from app.services.sessions import InvalidTransitionError
from app.services.storage import delete_objects, get_public_url, upload_item_photo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/items", tags=["items"])

REQUIRED_FILES = File(...)


class PhotoResponse(BaseModel):
    id: int
    url: str
    content_type: str | None = None


class ItemResponse(BaseModel):
    id: int
    session_id: int
    title: str | None = None
    notes: str | None = None
    category: str | None = None
    condition: str | None = None
    status: str
    decision: str | None = None
    decision_reason: str | None = None
    price_low: float | None = None
    price_mid: float | None = None
    price_high: float | None = None
    price_confidence: float | None = None
    price_rationale: str | None = None
    usage_score: int | None = None
    sentiment: str | None = None
    ai_recommendation: str | None = None
    ai_rationale: str | None = None
    photos: list[PhotoResponse] = Field(default_factory=list)
    listings: list[ListingResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ItemPatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    notes: str | None = None
    category: str | None = None
    condition: str | None = None
    price_low: float | None = None
    price_mid: float | None = None
    price_high: float | None = None


class DecisionRequest(BaseModel):
    decision: str
    reason: str | None = None


class ClassificationResponse(BaseModel):
    item_id: int
    status: str
    recommendation: str | None = None
    rationale: str | None = None


class PriceResponse(BaseModel):
    item_id: int
    price_low: float
    price_mid: float
    price_high: float
    price_confidence: float
    price_rationale: str | None = None


def item_response(item: Item) -> ItemResponse:
    """Serialize an item; must run while its database session is open."""
    return ItemResponse(
        id=item.id,
        session_id=item.session_id,
        title=item.title,
        notes=item.notes,
        category=item.category,
        condition=item.condition,
        status=item.status,
        decision=item.decision,
        decision_reason=item.decision_reason,
        price_low=item.price_low,
        price_mid=item.price_mid,
        price_high=item.price_high,
        price_confidence=item.price_confidence,
        price_rationale=item.price_rationale,
        usage_score=item.usage_score,
        sentiment=item.sentiment,
        ai_recommendation=item.ai_recommendation,
        ai_rationale=item.ai_rationale,
        photos=[
            PhotoResponse(
                id=photo.id,
                url=get_public_url(photo.storage_path),
                content_type=photo.content_type,
            )
            for photo in item.photos
        ],
        listings=[listing_response(row) for row in item.listings],
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


async def read_photos(files: list[UploadFile]) -> list[tuple[bytes, str]]:
    """Read and validate uploads before anything is stored."""
    photos: list[tuple[bytes, str]] = []
    try:
        item_service.validate_photo_count(0, len(files))
        for upload in files:
            contents = await upload.read()
            mime = item_service.validate_photo(upload.content_type, len(contents))
            photos.append((contents, mime))
    except UnsupportedPhotoTypeError as exc:
        raise HTTPException(
            status_code=415,
            detail=error_detail(ErrorCode.UNSUPPORTED_MEDIA_TYPE, str(exc)),
        ) from exc
    except PhotoTooLargeError as exc:
        raise HTTPException(
            status_code=413,
            detail=error_detail(ErrorCode.PAYLOAD_TOO_LARGE, str(exc)),
        ) from exc
    except PhotoValidationError as exc:
        raise bad_request(exc) from exc
    return photos


async def upload_photos(user_id: str, photos: list[tuple[bytes, str]]) -> list[tuple[str, str]]:
    stored: list[tuple[str, str]] = []
    try:
        for contents, mime in photos:
            key = await upload_item_photo(user_id, contents, mime)
            stored.append((key, mime))
    except HTTPException:
        await delete_objects([key for key, _ in stored])
        raise
    return stored


async def _in_db(func, **kwargs):
    def _call():
        with db_module.SessionLocal() as db:
            result = func(db, **kwargs)
            if isinstance(result, Item):
                return item_response(result)
            return result

    return await asyncio.to_thread(_call)


@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: int, user_id: str = Depends(rate_limit)):
    item = await _in_db(item_service.get_item, user_id=user_id, item_id=item_id)
    if item is None:
        raise not_found("Item not found")
    return item


@router.patch("/{item_id}", response_model=ItemResponse)
async def patch_item(
    item_id: int,
    body: ItemPatchRequest,
    user_id: str = Depends(rate_limit),
):
    try:
        item = await _in_db(
            item_service.update_item,
            user_id=user_id,
            item_id=item_id,
            changes=body.model_dump(exclude_unset=True),
        )
    except ItemValidationError as exc:
        raise bad_request(exc) from exc
    if item is None:
        raise not_found("Item not found")
    return item


@router.delete("/{item_id}", status_code=204)
async def delete_item(item_id: int, user_id: str = Depends(rate_limit)):
    keys = await _in_db(item_service.delete_item, user_id=user_id, item_id=item_id)
    if keys is None:
        raise not_found("Item not found")
    await delete_objects(keys)
    return Response(status_code=204)


@router.post("/{item_id}/photos", response_model=ItemResponse)
async def add_photos(
    item_id: int,
    files: list[UploadFile] = REQUIRED_FILES,
    user_id: str = Depends(rate_limit),
):
    photos = await read_photos(files)
    existing = await _in_db(item_service.count_photos, user_id=user_id, item_id=item_id)
    if existing is None:
        raise not_found("Item not found")
    try:
        item_service.validate_photo_count(existing, len(photos))
    except PhotoValidationError as exc:
        raise bad_request(exc) from exc

    stored = await upload_photos(user_id, photos)
    try:
        item = await _in_db(
            item_service.add_photos, user_id=user_id, item_id=item_id, photos=stored
        )
    except InvalidTransitionError as exc:
        await delete_objects([key for key, _ in stored])
        raise conflict(exc) from exc
    except PhotoValidationError as exc:
        await delete_objects([key for key, _ in stored])
        raise bad_request(exc) from exc
    if item is None:
        await delete_objects([key for key, _ in stored])
        raise not_found("Item not found")
    return item


@router.post("/{item_id}/classify", response_model=ClassificationResponse)
async def classify(
    item_id: int,
    locale: str = "en",
    user_id: str = Depends(rate_limit),
):
    outcome = await asyncio.to_thread(classify_item, user_id, item_id, locale=locale)
    if outcome is None:
        raise not_found("Item not found")
    if outcome.status == "limit_reached":
        raise limit_reached(outcome.rationale)
    if outcome.status == "error":
        if outcome.failure == "timeout":
            raise gateway_error(TimeoutError(outcome.rationale))
        if outcome.failure == "invalid":
            raise gateway_error(ValueError(outcome.rationale))
        raise gateway_error(RuntimeError(outcome.rationale))
    return ClassificationResponse(
        item_id=outcome.item_id,
        status=outcome.status,
        recommendation=outcome.recommendation,
        rationale=outcome.rationale,
    )


@router.post("/{item_id}/price", response_model=PriceResponse)
async def suggest_price(item_id: int, user_id: str = Depends(rate_limit)):
    try:
        item = await asyncio.to_thread(item_service.suggest_price, user_id, item_id)
    except ItemValidationError as exc:
        raise bad_request(exc) from exc
    except (TimeoutError, ValueError, RuntimeError) as exc:
        raise gateway_error(exc) from exc
    if item is None:
        raise not_found("Item not found")
    return PriceResponse(
        item_id=item.id,
        price_low=item.price_low,
        price_mid=item.price_mid,
        price_high=item.price_high,
        price_confidence=item.price_confidence,
        price_rationale=item.price_rationale,
    )


@router.post("/{item_id}/decision", response_model=ItemResponse)
async def record_decision(
    item_id: int,
    body: DecisionRequest,
    user_id: str = Depends(rate_limit),
):
    try:
        item = await _in_db(
            item_service.set_decision,
            user_id=user_id,
            item_id=item_id,
            decision=body.decision,
            reason=body.reason,
        )
    except ItemValidationError as exc:
        raise bad_request(exc) from exc
    if item is None:
        raise not_found("Item not found")
    return item


@router.get("/{item_id}/listings", response_model=list[ListingResponse])
async def get_listings(item_id: int, user_id: str = Depends(rate_limit)):
    def _load() -> list[ListingResponse] | None:
        with db_module.SessionLocal() as db:
            rows = list_listings(db, user_id=user_id, item_id=item_id)
            return None if rows is None else [listing_response(row) for row in rows]

    rows = await asyncio.to_thread(_load)
    if rows is None:
        raise not_found("Item not found")
    return rows


@router.post("/{item_id}/listings", response_model=list[ListingResponse], status_code=201)
async def create_listings(
    item_id: int,
    body: ListingRequest,
    user_id: str = Depends(rate_limit),
):
    rows = await run_listing_call(
        create_item_listings,
        user_id,
        item_id,
        features=body.features,
        languages=body.languages,
        tone=body.tone,
        channels=body.channels,
        title=body.title,
        condition=body.condition,
    )
    if rows is None:
        raise not_found("Item not found")
    return [listing_response(row) for row in rows]
