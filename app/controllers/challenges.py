from __future__ import annotations

import asyncio
from datetime import date, datetime

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from app import db as db_module
from app.dependencies import bad_request, not_found, rate_limit
from app.models import ChallengeTask
from app.services import challenges as challenge_service
from app.services.challenges import TaskValidationError
from app.services.sessions import get_session

router = APIRouter(prefix="/challenges", tags=["challenges"])


class TaskResponse(BaseModel):
    id: int
    session_id: int | None = None
    source: str
    name: str
    scheduled_date: date
    completed: bool
    completed_at: datetime | None = None
    reflection: str | None = None
    tip: str | None = None


class TaskCalendarResponse(BaseModel):
    today: list[TaskResponse]
    upcoming: list[TaskResponse]
    overdue: list[TaskResponse]
    completed: list[TaskResponse]


class TaskInput(BaseModel):
    name: str
    scheduled_date: date
    tip: str | None = None


class TaskCreateRequest(BaseModel):
    tasks: list[TaskInput] = Field(min_length=1)
    session_id: int | None = None


class CompleteRequest(BaseModel):
    reflection: str | None = None


class ReflectionRequest(BaseModel):
    reflection: str


def task_response(task: ChallengeTask) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        session_id=task.session_id,
        source=task.source,
        name=task.name,
        scheduled_date=task.scheduled_date,
        completed=bool(task.completed),
        completed_at=task.completed_at,
        reflection=task.reflection,
        tip=task.tip,
    )


@router.get("/tasks", response_model=TaskCalendarResponse)
async def list_tasks(session_id: int | None = None, user_id: str = Depends(rate_limit)):
    def _load() -> TaskCalendarResponse:
        with db_module.SessionLocal() as db:
            tasks = challenge_service.list_tasks(db, user_id=user_id, session_id=session_id)
        groups = challenge_service.group_tasks(tasks, date.today())
        return TaskCalendarResponse(
            **{name: [task_response(t) for t in rows] for name, rows in groups.items()}
        )

    return await asyncio.to_thread(_load)


@router.post("/tasks", response_model=list[TaskResponse], status_code=201)
async def create_tasks(body: TaskCreateRequest, user_id: str = Depends(rate_limit)):
    def _create() -> list[TaskResponse] | None:
        with db_module.SessionLocal() as db:
            if body.session_id is not None:
                if get_session(db, user_id=user_id, session_id=body.session_id) is None:
                    return None
            rows = challenge_service.schedule_tasks(
                db,
                user_id=user_id,
                tasks=[task.model_dump() for task in body.tasks],
                session_id=body.session_id,
                source="manual",
            )
            return [task_response(row) for row in rows]

    try:
        rows = await asyncio.to_thread(_create)
    except TaskValidationError as exc:
        raise bad_request(exc) from exc
    if rows is None:
        raise not_found("Session not found")
    return rows


async def _mutate(func, **kwargs) -> TaskResponse:
    def _call() -> TaskResponse | None:
        with db_module.SessionLocal() as db:
            task = func(db, **kwargs)
            return None if task is None else task_response(task)

    try:
        task = await asyncio.to_thread(_call)
    except TaskValidationError as exc:
        raise bad_request(exc) from exc
    if task is None:
        raise not_found("Task not found")
    return task


@router.post("/tasks/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: int,
    body: CompleteRequest | None = None,
    user_id: str = Depends(rate_limit),
):
    return await _mutate(
        challenge_service.complete_task,
        user_id=user_id,
        task_id=task_id,
        reflection=body.reflection if body else None,
    )


@router.patch("/tasks/{task_id}/reflection", response_model=TaskResponse)
async def update_reflection(
    task_id: int,
    body: ReflectionRequest,
    user_id: str = Depends(rate_limit),
):
    return await _mutate(
        challenge_service.update_reflection,
        user_id=user_id,
        task_id=task_id,
        reflection=body.reflection,
    )


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: int, user_id: str = Depends(rate_limit)):
    def _delete() -> bool:
        with db_module.SessionLocal() as db:
            return challenge_service.delete_task(db, user_id=user_id, task_id=task_id)

    if not await asyncio.to_thread(_delete):
        raise not_found("Task not found")
    return Response(status_code=204)
