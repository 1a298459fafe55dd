from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from app import db as db_module
from app.config import Settings
from app.metrics import listings_created_total, quota_reject_total, sessions_created_total
from app.models import LANGUAGES, TONES, DeclutterSession, Item, Listing
from app.services import gpt
from app.services.items import get_item
from app.services.quota import QuotaExceededError, check_quota
from app.services.sessions import DEFAULT_TITLES, require_active

settings = Settings()
logger = logging.getLogger(__name__)

PLACEHOLDER_CATEGORY = "Generated Listing"
PLACEHOLDER_RATIONALE = "Generated through Quick Listing Generator"
# used when an item was never classified and the user gave no condition
DEFAULT_CONDITION = "Good"


class ListingValidationError(ValueError):
    pass


def _normalise_request(
    title: str | None,
    condition: str | None,
    languages: list[str] | None,
    tone: str,
) -> tuple[str, str, list[str]]:
    title = (title or "").strip()
    condition = (condition or "").strip()
    if not title:
        raise ListingValidationError("Title is required")
    if not condition:
        raise ListingValidationError("Condition is required")
    langs: list[str] = []
    for lang in languages or ["en"]:
        if lang not in LANGUAGES:
            raise ListingValidationError(f"Unsupported language: {lang}")
        if lang not in langs:
            langs.append(lang)
    if tone not in TONES:
        raise ListingValidationError(f"Unsupported tone: {tone}")
    return title, condition, langs


def _gate(user_id: str) -> None:
    if not settings.quota_gate_listings:
        return
    info = check_quota(user_id)
    if not info.can_use:
        quota_reject_total.inc()
        raise QuotaExceededError(info)


def generate_listings(
    title: str | None,
    condition: str | None,
    features: list[str] | None = None,
    languages: list[str] | None = None,
    tone: str = "friendly",
) -> dict[str, dict[str, Any]]:
    """Validate the request and ask the AI Gateway for copy in each language."""
    title, condition, langs = _normalise_request(title, condition, languages, tone)
    features = [f.strip() for f in features or [] if f and f.strip()]
    return gpt.write_listings(
        title=title,
        condition=condition,
        features=features,
        languages=langs,
        tone=tone,
    )


def _persist(
    db: Session,
    item: Item,
    generated: dict[str, dict[str, Any]],
    *,
    tone: str,
    channels: list[str],
) -> list[Listing]:
    rows = [
        Listing(
            item_id=item.id,
            lang=lang,
            title=entry["title"],
            body=entry["body"],
            hashtags=entry["hashtags"],
            channels=channels,
            tone=tone,
        )
        for lang, entry in generated.items()
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    listings_created_total.inc(len(rows))
    logger.info("stored %d listing(s) for item %s", len(rows), item.id)
    return rows


def create_item_listings(
    user_id: str,
    item_id: int,
    *,
    features: list[str] | None = None,
    languages: list[str] | None = None,
    tone: str = "friendly",
    channels: list[str] | None = None,
    title: str | None = None,
    condition: str | None = None,
) -> list[Listing] | None:
    """Generate and store listings for an owned item; ``None`` when not found.

    ``title`` and ``condition`` override the item fields for this listing only.
    """
    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return None
        if item.decision == "sell" and item.price_mid is None:
            raise ListingValidationError("Set a price before generating a listing")
        title = (title or "").strip() or item.title
        condition = (condition or "").strip() or item.condition or DEFAULT_CONDITION
        notes = item.notes

    if not features and notes:
        features = [notes]
    _normalise_request(title, condition, languages, tone)
    _gate(user_id)
    generated = generate_listings(title, condition, features, languages, tone)

    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return None
        return _persist(db, item, generated, tone=tone, channels=channels or [])


def create_standalone_listings(
    user_id: str,
    *,
    title: str,
    condition: str,
    features: list[str] | None = None,
    languages: list[str] | None = None,
    tone: str = "friendly",
    channels: list[str] | None = None,
    session_id: int | None = None,
) -> tuple[int, list[Listing]] | None:
    """Generate listings from ad-hoc fields and attach them to a placeholder item.

    The placeholder lives in ``session_id`` when given (owned and active),
    otherwise in a new quick-listing session. Returns ``(item_id, listings)``
    or ``None`` when the given session is missing or not owned.
    """
    title, condition, _ = _normalise_request(title, condition, languages, tone)
    if session_id is not None:
        with db_module.SessionLocal() as db:
            session = (
                db.query(DeclutterSession)
                .filter(DeclutterSession.id == session_id, DeclutterSession.user_id == user_id)
                .one_or_none()
            )
            if not session:
                return None
            require_active(session)

    _gate(user_id)
    generated = generate_listings(title, condition, features, languages, tone)

    with db_module.SessionLocal() as db:
        if session_id is None:
            session = DeclutterSession(
                user_id=user_id,
                scenario="quick-listing",
                title=DEFAULT_TITLES["quick-listing"],
                status="active",
            )
            db.add(session)
            db.flush()
            sessions_created_total.labels(scenario="quick-listing").inc()
        else:
            session = (
                db.query(DeclutterSession)
                .filter(DeclutterSession.id == session_id, DeclutterSession.user_id == user_id)
                .one_or_none()
            )
            if not session:
                return None
        item = Item(
            session_id=session.id,
            title=title[:200],
            condition=condition[:40],
            category=PLACEHOLDER_CATEGORY,
            ai_recommendation="sell",
            ai_rationale=PLACEHOLDER_RATIONALE,
            status="manual",
        )
        db.add(item)
        db.flush()
        rows = _persist(db, item, generated, tone=tone, channels=channels or [])
        return item.id, rows


def list_listings(db: Session, *, user_id: str, item_id: int) -> list[Listing] | None:
    item = get_item(db, user_id=user_id, item_id=item_id)
    if not item:
        return None
    return list(item.listings)


def delete_listing(db: Session, *, user_id: str, listing_id: int) -> bool:
    listing = (
        db.query(Listing)
        .join(Item, Listing.item_id == Item.id)
        .join(DeclutterSession, Item.session_id == DeclutterSession.id)
        .filter(Listing.id == listing_id, DeclutterSession.user_id == user_id)
        .one_or_none()
    )
    if not listing:
        return False
    db.delete(listing)
    db.commit()
    return True


__all__ = [
    "ListingValidationError",
    "generate_listings",
    "create_item_listings",
    "create_standalone_listings",
    "list_listings",
    "delete_listing",
]
