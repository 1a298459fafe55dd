"""AI moving plan for moving-assistant sessions."""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import date
from typing import Any, NamedTuple

from app import db as db_module
from app.metrics import quota_reject_total
from app.models import ChallengeTask
from app.services import gpt
from app.services.challenges import build_tasks, moving_plan_tasks
from app.services.quota import QuotaExceededError, check_quota
from app.services.sessions import SessionValidationError, get_session, require_active

logger = logging.getLogger(__name__)


class MovingPlanResult(NamedTuple):
    session_id: int
    plan: dict[str, Any]
    tasks_scheduled: int


def generate_moving_plan(
    user_id: str,
    session_id: int,
    *,
    schedule: bool = True,
    today: date | None = None,
) -> MovingPlanResult | None:
    today = today or date.today()
    with db_module.SessionLocal() as db:
        session = get_session(db, user_id=user_id, session_id=session_id)
        if not session:
            return None
        if session.scenario != "moving-assistant":
            raise SessionValidationError("Moving plans are only available for moving-assistant sessions")
        require_active(session)
        if not session.move_date or not session.region:
            raise SessionValidationError("Move date and region are required for a moving plan")
        move_date = session.move_date
        region = session.region
        trade_method = session.trade_method
        inventory = Counter(item.category or "Uncategorized" for item in session.items)

    days_until_move = (move_date - today).days
    if days_until_move < 0:
        raise SessionValidationError("Move date is in the past")
    weeks = max(1, math.ceil(days_until_move / 7))

    quota = check_quota(user_id)
    if not quota.can_use:
        quota_reject_total.inc()
        raise QuotaExceededError(quota)

    plan = gpt.plan_move(
        move_date=move_date.isoformat(),
        region=region,
        days_until_move=days_until_move,
        weeks=weeks,
        inventory=dict(inventory),
        trade_method=trade_method,
    )

    with db_module.SessionLocal() as db:
        session = get_session(db, user_id=user_id, session_id=session_id)
        if not session:
            return None
        session.moving_plan = plan
        session.ai_plan_generated = True
        scheduled = 0
        if schedule:
            # a regenerated plan replaces the open tasks of the previous one
            db.query(ChallengeTask).filter(
                ChallengeTask.session_id == session.id,
                ChallengeTask.source == "moving-plan",
                ChallengeTask.completed.is_(False),
            ).delete(synchronize_session=False)
            tasks = build_tasks(
                user_id=user_id,
                tasks=moving_plan_tasks(plan, today),
                session_id=session.id,
                source="moving-plan",
            )
            db.add_all(tasks)
            scheduled = len(tasks)
        db.commit()
    logger.info(
        "moving plan stored for session %s, %d task(s) scheduled",
        session_id,
        scheduled,
        extra={"user_id": user_id, "session_id": session_id},
    )
    return MovingPlanResult(session_id=session_id, plan=plan, tasks_scheduled=scheduled)


__all__ = ["MovingPlanResult", "generate_moving_plan"]
