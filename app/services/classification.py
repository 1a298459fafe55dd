"""Quota-gated AI classification of a single item.

The item row is read, the AI Gateway is called and the result is written back
in separate database round-trips; nothing is locked while the model runs. A
crash between the steps leaves the item in ``analyzing`` so the retry endpoint
can pick it up again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, NamedTuple

from app import db as db_module
from app.metrics import items_analyzing, quota_reject_total
from app.services import gpt
from app.services.items import get_item, photo_urls
from app.services.quota import check_quota, limit_reached_message

logger = logging.getLogger(__name__)


class ClassificationOutcome(NamedTuple):
    item_id: int
    status: str
    recommendation: str | None = None
    rationale: str | None = None
    # timeout | invalid | unavailable, set only when status is "error"
    failure: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _store(user_id: str, item_id: int, fields: dict[str, Any]) -> bool:
    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return False
        if fields.pop("_title_from_ai", False) and not item.title:
            item.title = f"{fields['category']} - {fields['condition']}"[:200]
        for name, value in fields.items():
            setattr(item, name, value)
        item.updated_at = _now()
        db.commit()
        return True


def classify_item(user_id: str, item_id: int, *, locale: str = "en") -> ClassificationOutcome | None:
    """Classify ``item_id`` for ``user_id``; returns ``None`` when not found."""
    log_ctx = {"user_id": user_id, "item_id": item_id}
    with db_module.SessionLocal() as db:
        item = get_item(db, user_id=user_id, item_id=item_id)
        if not item:
            return None
        urls = photo_urls(item)
        previous_status = item.status
        context = {
            "title": item.title,
            "notes": item.notes,
            "scenario": item.session.scenario,
            "region": item.session.region,
        }

    quota = check_quota(user_id)
    if not quota.can_use:
        quota_reject_total.inc()
        message = limit_reached_message(quota)
        logger.info("classification refused for item %s: %s", item_id, message, extra=log_ctx)
        if previous_status == "analyzed":
            # a stored result stays counted and visible
            return ClassificationOutcome(item_id, "limit_reached", rationale=message)
        if not _store(user_id, item_id, {"status": "limit_reached", "ai_rationale": message}):
            return None
        return ClassificationOutcome(item_id, "limit_reached", rationale=message)

    if not _store(user_id, item_id, {"status": "analyzing"}):
        return None

    items_analyzing.inc()
    try:
        result = gpt.classify_item(urls, locale=locale, **context)
    except TimeoutError:
        logger.warning("classification timed out for item %s", item_id, extra=log_ctx)
        return _fail(user_id, item_id, "AI request timed out", "timeout")
    except ValueError as exc:
        logger.warning(
            "classification returned unusable output for item %s: %s", item_id, exc, extra=log_ctx
        )
        return _fail(user_id, item_id, str(exc), "invalid")
    except RuntimeError as exc:
        logger.exception("classification failed for item %s", item_id, extra=log_ctx)
        return _fail(user_id, item_id, str(exc), "unavailable")
    finally:
        items_analyzing.dec()

    stored = _store(
        user_id,
        item_id,
        {
            "category": result["category"],
            "condition": result["condition"],
            "usage_score": result["usage_score"],
            "sentiment": result["sentiment"],
            "ai_recommendation": result["recommendation"],
            "ai_rationale": result["rationale"],
            "status": "analyzed",
            "_title_from_ai": True,
        },
    )
    if not stored:
        return None
    return ClassificationOutcome(
        item_id,
        "analyzed",
        recommendation=result["recommendation"],
        rationale=result["rationale"],
    )


def _fail(user_id: str, item_id: int, reason: str, failure: str) -> ClassificationOutcome | None:
    rationale = f"Analysis failed: {reason}"
    if not _store(user_id, item_id, {"status": "error", "ai_rationale": rationale}):
        return None
    return ClassificationOutcome(item_id, "error", rationale=rationale, failure=failure)


__all__ = ["ClassificationOutcome", "classify_item"]
