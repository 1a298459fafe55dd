"""Free AI usage ledger.

Usage is never stored as a counter: every check counts the rows that
represent consumed AI actions.

- a successful item classification (item status ``analyzed``)
- a generated moving plan (session flag ``ai_plan_generated``)

The sum is compared against the free-tier cap from settings.
"""
from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app import db as db_module
from app.config import Settings
from app.models import DeclutterSession, Item

settings = Settings()
logger = logging.getLogger(__name__)


class QuotaInfo(NamedTuple):
    """Snapshot of a user's free AI usage."""
    analyses_used: int
    plans_used: int
    total: int
    max_free: int
    can_use: bool


def _count_usage(db, user_id: str) -> tuple[int, int]:
    user_sessions = select(DeclutterSession.id).where(DeclutterSession.user_id == user_id)
    analyses = db.execute(
        select(func.count(Item.id)).where(
            Item.session_id.in_(user_sessions),
            Item.status == "analyzed",
            Item.ai_recommendation.is_not(None),
        )
    ).scalar_one()
    plans = db.execute(
        select(func.count(DeclutterSession.id)).where(
            DeclutterSession.user_id == user_id,
            DeclutterSession.ai_plan_generated.is_(True),
        )
    ).scalar_one()
    return int(analyses or 0), int(plans or 0)


class QuotaExceededError(Exception):
    """Raised by synchronous AI operations when the free quota is used up."""

    def __init__(self, info: QuotaInfo):
        super().__init__(limit_reached_message(info))
        self.info = info


def check_quota(user_id: str, *, max_free: int | None = None) -> QuotaInfo:
    """Count consumed AI actions for ``user_id`` (synchronous, for ``asyncio.to_thread``).

    Fails closed: when the database cannot be read the user is reported as
    having no AI actions left.
    """
    cap = settings.free_ai_limit if max_free is None else max_free
    try:
        with db_module.SessionLocal() as db:
            analyses, plans = _count_usage(db, user_id)
    except (SQLAlchemyError, RuntimeError):
        logger.exception("quota read failed for user %s, refusing AI use", user_id)
        return QuotaInfo(
            analyses_used=0,
            plans_used=0,
            total=cap,
            max_free=cap,
            can_use=False,
        )

    total = analyses + plans
    return QuotaInfo(
        analyses_used=analyses,
        plans_used=plans,
        total=total,
        max_free=cap,
        can_use=total < cap,
    )


def limit_reached_message(info: QuotaInfo) -> str:
    return (
        f"AI analysis limit reached ({info.total}/{info.max_free}). "
        "You can still make decisions manually."
    )


__all__ = ["QuotaInfo", "QuotaExceededError", "check_quota", "limit_reached_message"]
