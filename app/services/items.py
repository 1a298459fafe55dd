"""Items, their photos and the decisions users record for them."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from app import db as db_module
from app.config import Settings
from app.models import DECISIONS, DeclutterSession, Item, ItemPhoto
from app.services import gpt
from app.services.sessions import require_active
from app.services.storage import get_public_url

settings = Settings()

ALLOWED_PHOTO_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/webp",
        "image/heic",
        "image/heif",
        "image/gif",
    }
)
_PRICE_FIELDS = ("price_low", "price_mid", "price_high")
# editable text columns and their lengths
_TEXT_FIELDS = {"title": 200, "category": 80, "condition": 40}


class ItemValidationError(ValueError):
    pass


class PhotoValidationError(ValueError):
    pass


class PhotoTooLargeError(PhotoValidationError):
    pass


class UnsupportedPhotoTypeError(PhotoValidationError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def validate_photo(content_type: str | None, size: int) -> str:
    """Check one upload before anything is stored; returns the normalised MIME type."""
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime not in ALLOWED_PHOTO_TYPES:
        raise UnsupportedPhotoTypeError(
            "Only image files are allowed (JPEG, PNG, WebP, HEIC, GIF)"
        )
    if size > settings.max_photo_bytes:
        limit_mb = settings.max_photo_bytes // (1024 * 1024)
        raise PhotoTooLargeError(f"File size must be less than {limit_mb}MB")
    if size == 0:
        raise PhotoValidationError("File is empty")
    return mime


def validate_photo_count(existing: int, incoming: int) -> None:
    cap = settings.max_photos_per_item
    if incoming < 1:
        raise PhotoValidationError("At least one photo is required")
    if existing + incoming > cap:
        raise PhotoValidationError(f"Maximum {cap} photos allowed per item")


def get_item(db: Session, *, user_id: str, item_id: int) -> Item | None:
    return (
        db.query(Item)
        .join(DeclutterSession, Item.session_id == DeclutterSession.id)
        .filter(Item.id == item_id, DeclutterSession.user_id == user_id)
        .one_or_none()
    )


def photo_urls(item: Item) -> list[str]:
    return [get_public_url(photo.storage_path) for photo in item.photos]


def add_item(
    db: Session,
    *,
    user_id: str,
    session_id: int,
    photos: list[tuple[str, str]],
    title: str | None = None,
    notes: str | None = None,
) -> Item | None:
    """Create an item in ``analyzing`` state with its photos in one transaction.

    ``photos`` holds ``(storage_key, content_type)`` pairs that were already
    uploaded. Returns ``None`` when the session is missing or not owned.
    """
    session = (
        db.query(DeclutterSession)
        .filter(DeclutterSession.id == session_id, DeclutterSession.user_id == user_id)
        .one_or_none()
    )
    if not session:
        return None
    require_active(session)
    validate_photo_count(0, len(photos))

    item = Item(
        session_id=session.id,
        title=(title or "").strip()[:200] or None,
        notes=(notes or "").strip() or None,
        status="analyzing",
    )
    item.photos = [ItemPhoto(storage_path=key, content_type=mime) for key, mime in photos]
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def add_photos(
    db: Session, *, user_id: str, item_id: int, photos: list[tuple[str, str]]
) -> Item | None:
    item = get_item(db, user_id=user_id, item_id=item_id)
    if not item:
        return None
    require_active(item.session)
    validate_photo_count(len(item.photos), len(photos))
    for key, mime in photos:
        item.photos.append(ItemPhoto(storage_path=key, content_type=mime))
    item.updated_at = _now()
    db.commit()
    db.refresh(item)
    return item


def count_photos(db: Session, *, user_id: str, item_id: int) -> int | None:
    item = get_item(db, user_id=user_id, item_id=item_id)
    return None if item is None else len(item.photos)


def update_item(db: Session, *, user_id: str, item_id: int, changes: dict[str, Any]) -> Item | None:
    """Apply manual edits: title, notes, category, condition and the price band."""
    item = get_item(db, user_id=user_id, item_id=item_id)
    if not item:
        return None
    unknown = set(changes) - {*_TEXT_FIELDS, "notes", *_PRICE_FIELDS}
    if unknown:
        raise ItemValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    prices = {field: changes.get(field, getattr(item, field)) for field in _PRICE_FIELDS}
    for field, value in prices.items():
        if value is not None and value < 0:
            raise ItemValidationError(f"{field} must not be negative")
    present = [prices[field] for field in _PRICE_FIELDS if prices[field] is not None]
    if present != sorted(present):
        raise ItemValidationError("Prices must satisfy low <= mid <= high")

    for field, limit in _TEXT_FIELDS.items():
        if field in changes:
            setattr(item, field, (changes[field] or "").strip()[:limit] or None)
    if "notes" in changes:
        item.notes = (changes["notes"] or "").strip() or None
    for field in _PRICE_FIELDS:
        if field in changes:
            setattr(item, field, changes[field])
    item.updated_at = _now()
    db.commit()
    db.refresh(item)
    return item


def set_decision(
    db: Session,
    *,
    user_id: str,
    item_id: int,
    decision: str,
    reason: str | None = None,
) -> Item | None:
    """Record the user's choice; AI status and prices are left untouched."""
    if decision not in DECISIONS:
        raise ItemValidationError(f"Unknown decision: {decision}")
    item = get_item(db, user_id=user_id, item_id=item_id)
    if not item:
        return None
    item.decision = decision
    item.decision_reason = (reason or "").strip() or None
    item.updated_at = _now()
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, *, user_id: str, item_id: int) -> list[str] | None:
    """Delete an item with its photos and listings.

    Returns the storage keys of the removed photos so the caller can delete
    the objects, or ``None`` when the item is missing or not owned.
    """
    item = get_item(db, user_id=user_id, item_id=item_id)
    if not item:
        return None
    keys = [photo.storage_path for photo in item.photos]
    for listing in item.listings:
        db.delete(listing)
    for photo in item.photos:
        db.delete(photo)
    db.delete(item)
    db.commit()
    return keys


def suggest_price(user_id: str, item_id: int) -> Item | None:
    """Ask the AI Gateway for a price band and store it on the item.

    Synchronous; run through ``asyncio.to_thread``. No database session is
    held while the gateway call is in flight. Gateway errors propagate.
    """
    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return None
        urls = photo_urls(item)
        context = {
            "title": item.title or "Untitled item",
            "category": item.category or "Other",
            "condition": item.condition or "Good",
            "region": item.session.region,
            "scenario": item.session.scenario,
        }
    if not urls:
        raise ItemValidationError("At least one photo is required for price suggestion")

    result = gpt.suggest_price(urls, **context)

    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return None
        item.price_low = result["price_low"]
        item.price_mid = result["price_mid"]
        item.price_high = result["price_high"]
        item.price_confidence = result["confidence"]
        item.price_rationale = result["rationale"]
        item.updated_at = _now()
        db.commit()
        db.refresh(item)
        return item


__all__ = [
    "ALLOWED_PHOTO_TYPES",
    "ItemValidationError",
    "PhotoValidationError",
    "PhotoTooLargeError",
    "UnsupportedPhotoTypeError",
    "validate_photo",
    "validate_photo_count",
    "get_item",
    "photo_urls",
    "add_item",
    "add_photos",
    "count_photos",
    "update_item",
    "set_decision",
    "delete_item",
    "suggest_price",
]
