from __future__ import annotations

from datetime import date, datetime, timezone
from typing import NamedTuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import Settings
from app.metrics import sessions_created_total
from app.models import SCENARIOS, SESSION_STATUSES, TRADE_METHODS, DeclutterSession
from app.services.challenges import build_tasks, daily_challenge_tasks

settings = Settings()

DEFAULT_TITLES = {
    "item-triage": "Keep vs Sell Helper",
    "moving-assistant": "Moving Assistant",
    "quick-listing": "Quick Listing Generator",
}


class SessionValidationError(ValueError):
    pass


class InvalidTransitionError(ValueError):
    pass


class SessionSummary(NamedTuple):
    item_count: int
    decided_count: int
    expected_revenue: float


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _default_title(scenario: str, days: int | None) -> str:
    if scenario == "daily-challenge":
        return f"{days}-Day Declutter Challenge"
    return DEFAULT_TITLES[scenario]


def create_session(
    db: Session,
    *,
    user_id: str,
    scenario: str,
    title: str | None = None,
    move_date: date | None = None,
    region: str | None = None,
    trade_method: str | None = None,
    days: int | None = None,
    today: date | None = None,
) -> DeclutterSession:
    """Open a new session; daily challenges get their tasks in the same commit."""
    if scenario not in SCENARIOS:
        raise SessionValidationError(f"Unknown scenario: {scenario}")
    region = (region or "").strip() or None
    if scenario != "moving-assistant" and (move_date or region or trade_method):
        raise SessionValidationError("Move details are only accepted for moving-assistant")
    if trade_method is not None and trade_method not in TRADE_METHODS:
        raise SessionValidationError(f"Unknown trade method: {trade_method}")

    if scenario == "daily-challenge":
        days = settings.challenge_default_days if days is None else days
        if not 1 <= days <= settings.challenge_max_days:
            raise SessionValidationError(
                f"Challenge length must be between 1 and {settings.challenge_max_days} days"
            )
    elif days is not None:
        raise SessionValidationError("Challenge length is only accepted for daily-challenge")

    record = DeclutterSession(
        user_id=user_id,
        scenario=scenario,
        title=(title or "").strip()[:200] or _default_title(scenario, days),
        status="active",
        move_date=move_date,
        region=region,
        trade_method=trade_method,
        challenge_days=days,
        ai_plan_generated=False,
    )
    db.add(record)
    if scenario == "daily-challenge":
        db.flush()
        db.add_all(
            build_tasks(
                user_id=user_id,
                tasks=daily_challenge_tasks(today or date.today(), days),
                session_id=record.id,
                source="daily-challenge",
            )
        )
    db.commit()
    db.refresh(record)
    sessions_created_total.labels(scenario=scenario).inc()
    return record


def get_session(db: Session, *, user_id: str, session_id: int) -> DeclutterSession | None:
    return (
        db.query(DeclutterSession)
        .filter(DeclutterSession.id == session_id, DeclutterSession.user_id == user_id)
        .one_or_none()
    )


def list_sessions(
    db: Session, *, user_id: str, status: str | None = None
) -> list[DeclutterSession]:
    query = db.query(DeclutterSession).filter(DeclutterSession.user_id == user_id)
    if status is not None:
        if status not in SESSION_STATUSES:
            raise SessionValidationError(f"Unknown status: {status}")
        query = query.filter(DeclutterSession.status == status)
    return query.order_by(DeclutterSession.created_at.desc(), DeclutterSession.id.desc()).all()


def _transition(
    db: Session, *, user_id: str, session_id: int, target: str
) -> DeclutterSession | None:
    # owner and source status are part of the UPDATE filter, so a concurrent
    # transition or a foreign session never matches
    result = db.execute(
        update(DeclutterSession)
        .where(
            DeclutterSession.id == session_id,
            DeclutterSession.user_id == user_id,
            DeclutterSession.status == "active",
        )
        .values(status=target, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    record = get_session(db, user_id=user_id, session_id=session_id)
    if record is None:
        return None
    db.refresh(record)
    if result.rowcount == 0:
        raise InvalidTransitionError(
            f"Session is {record.status}; only active sessions can be {target}"
        )
    return record


def complete_session(db: Session, *, user_id: str, session_id: int) -> DeclutterSession | None:
    return _transition(db, user_id=user_id, session_id=session_id, target="completed")


def archive_session(db: Session, *, user_id: str, session_id: int) -> DeclutterSession | None:
    return _transition(db, user_id=user_id, session_id=session_id, target="archived")


def session_summary(record: DeclutterSession) -> SessionSummary:
    """Counters derived from the session's items; never stored."""
    items = list(record.items)
    decided = [item for item in items if item.decision is not None]
    revenue = sum(
        item.price_mid
        for item in decided
        if item.decision == "sell" and item.price_mid is not None
    )
    return SessionSummary(
        item_count=len(items),
        decided_count=len(decided),
        expected_revenue=float(revenue),
    )


def require_active(record: DeclutterSession) -> None:
    if record.status != "active":
        raise InvalidTransitionError(f"Session is {record.status}")


__all__ = [
    "DEFAULT_TITLES",
    "SessionValidationError",
    "InvalidTransitionError",
    "SessionSummary",
    "create_session",
    "get_session",
    "list_sessions",
    "complete_session",
    "archive_session",
    "session_summary",
    "require_active",
]
