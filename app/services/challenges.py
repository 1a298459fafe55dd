"""Challenge calendar: dated, completable tasks owned by a user."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.orm import Session

from app.models import ChallengeTask, TASK_SOURCES

DAILY_PROMPTS = (
    "Pick one drawer and remove three things you no longer use.",
    "Find a piece of clothing you have not worn in a year and decide its fate.",
    "Clear one flat surface completely, then put back only what belongs there.",
    "Choose a duplicate kitchen item and let it go.",
    "Go through a shelf of books or media and set aside what you will not revisit.",
    "Collect expired or empty products from the bathroom.",
    "Photograph one item worth selling and give it a fair price.",
)
DAILY_TIP = (
    "Start small and stop while it still feels easy. Consistency matters more "
    "than the size of each step."
)


class TaskValidationError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def daily_challenge_tasks(start: date, days: int) -> list[dict[str, Any]]:
    """One task per consecutive day, rotating through the canned prompts."""
    return [
        {
            "name": DAILY_PROMPTS[offset % len(DAILY_PROMPTS)],
            "scheduled_date": start + timedelta(days=offset),
            "tip": DAILY_TIP,
        }
        for offset in range(days)
    ]


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def moving_plan_tasks(plan: dict[str, Any], today: date) -> list[dict[str, Any]]:
    """Spread each week's tasks over consecutive days from the week start.

    The week start is the plan's ``start_date`` when it parses, otherwise
    ``today + 7 * (week - 1)``.
    """
    tasks: list[dict[str, Any]] = []
    for position, week in enumerate(plan.get("timeline") or [], start=1):
        week_no = week.get("week") or position
        week_start = _parse_date(week.get("start_date")) or today + timedelta(
            days=7 * (int(week_no) - 1)
        )
        for task_index, name in enumerate(week.get("tasks") or []):
            tasks.append(
                {
                    "name": name,
                    "scheduled_date": week_start + timedelta(days=task_index),
                    "tip": None,
                }
            )
    return tasks


def build_tasks(
    *,
    user_id: str,
    tasks: Iterable[dict[str, Any]],
    session_id: int | None = None,
    source: str = "manual",
) -> list[ChallengeTask]:
    if source not in TASK_SOURCES:
        raise TaskValidationError(f"Unknown task source: {source}")
    built: list[ChallengeTask] = []
    for entry in tasks:
        name = str(entry.get("name") or "").strip()
        if not name:
            raise TaskValidationError("Task name is required")
        scheduled = _parse_date(entry.get("scheduled_date"))
        if scheduled is None:
            raise TaskValidationError(f"Invalid scheduled date for task: {name}")
        built.append(
            ChallengeTask(
                user_id=user_id,
                session_id=session_id,
                source=source,
                name=name[:300],
                scheduled_date=scheduled,
                tip=entry.get("tip"),
                completed=False,
            )
        )
    return built


def schedule_tasks(
    db: Session,
    *,
    user_id: str,
    tasks: Iterable[dict[str, Any]],
    session_id: int | None = None,
    source: str = "manual",
) -> list[ChallengeTask]:
    records = build_tasks(user_id=user_id, tasks=tasks, session_id=session_id, source=source)
    db.add_all(records)
    db.commit()
    return records


def get_task(db: Session, *, user_id: str, task_id: int) -> ChallengeTask | None:
    return (
        db.query(ChallengeTask)
        .filter(ChallengeTask.id == task_id, ChallengeTask.user_id == user_id)
        .one_or_none()
    )


def list_tasks(
    db: Session, *, user_id: str, session_id: int | None = None
) -> list[ChallengeTask]:
    query = db.query(ChallengeTask).filter(ChallengeTask.user_id == user_id)
    if session_id is not None:
        query = query.filter(ChallengeTask.session_id == session_id)
    return query.order_by(ChallengeTask.scheduled_date, ChallengeTask.id).all()


def group_tasks(tasks: Iterable[ChallengeTask], today: date) -> dict[str, list[ChallengeTask]]:
    """Split tasks into the calendar buckets: today, upcoming, overdue, completed."""
    groups: dict[str, list[ChallengeTask]] = {
        "today": [],
        "upcoming": [],
        "overdue": [],
        "completed": [],
    }
    for task in tasks:
        if task.completed:
            groups["completed"].append(task)
        elif task.scheduled_date == today:
            groups["today"].append(task)
        elif task.scheduled_date > today:
            groups["upcoming"].append(task)
        else:
            groups["overdue"].append(task)
    return groups


def complete_task(
    db: Session, *, user_id: str, task_id: int, reflection: str | None = None
) -> ChallengeTask | None:
    task = get_task(db, user_id=user_id, task_id=task_id)
    if not task:
        return None
    task.completed = True
    task.completed_at = _now()
    task.reflection = (reflection or "").strip() or None
    task.updated_at = _now()
    db.commit()
    db.refresh(task)
    return task


def update_reflection(
    db: Session, *, user_id: str, task_id: int, reflection: str
) -> ChallengeTask | None:
    task = get_task(db, user_id=user_id, task_id=task_id)
    if not task:
        return None
    if not task.completed:
        raise TaskValidationError("Complete the task before adding a reflection")
    task.reflection = reflection.strip() or None
    task.updated_at = _now()
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, *, user_id: str, task_id: int) -> bool:
    deleted = (
        db.query(ChallengeTask)
        .filter(ChallengeTask.id == task_id, ChallengeTask.user_id == user_id)
        .delete()
    )
    db.commit()
    return bool(deleted)


__all__ = [
    "DAILY_PROMPTS",
    "DAILY_TIP",
    "TaskValidationError",
    "daily_challenge_tasks",
    "moving_plan_tasks",
    "build_tasks",
    "schedule_tasks",
    "get_task",
    "list_tasks",
    "group_tasks",
    "complete_task",
    "update_reflection",
    "delete_task",
]
