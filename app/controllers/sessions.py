from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    UploadFile,
)
from pydantic import BaseModel, Field

from app import db as db_module
from app.controllers.items import ItemResponse, item_response, read_photos, upload_photos
from app.dependencies import (
    bad_request,
    conflict,
    gateway_error,
    limit_reached,
    not_found,
    rate_limit,
)
from app.models import DeclutterSession
from app.services import sessions as session_service
from app.services.classification import classify_item
from app.services.items import PhotoValidationError, add_item
from app.services.moving_plan import generate_moving_plan
from app.services.quota import QuotaExceededError
from app.services.sessions import InvalidTransitionError, SessionValidationError
from app.services.storage import delete_objects

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

REQUIRED_FILES = File(...)


class SessionCreateRequest(BaseModel):
    scenario: str
    title: str | None = None
    move_date: date | None = None
    region: str | None = None
    trade_method: str | None = None
    days: int | None = None


class SessionResponse(BaseModel):
    id: int
    scenario: str
    title: str | None = None
    status: str
    move_date: date | None = None
    region: str | None = None
    trade_method: str | None = None
    challenge_days: int | None = None
    ai_plan_generated: bool
    moving_plan: dict[str, Any] | None = None
    item_count: int
    decided_count: int
    expected_revenue: float
    created_at: datetime
    updated_at: datetime


class SessionDetailResponse(SessionResponse):
    items: list[ItemResponse] = Field(default_factory=list)


class ItemAcceptedResponse(BaseModel):
    item_id: int
    status: str


class MovingPlanResponse(BaseModel):
    session_id: int
    plan: dict[str, Any]
    tasks_scheduled: int


def session_response(record: DeclutterSession, *, with_items: bool = False):
    summary = session_service.session_summary(record)
    fields = dict(
        id=record.id,
        scenario=record.scenario,
        title=record.title,
        status=record.status,
        move_date=record.move_date,
        region=record.region,
        trade_method=record.trade_method,
        challenge_days=record.challenge_days,
        ai_plan_generated=bool(record.ai_plan_generated),
        moving_plan=record.moving_plan,
        created_at=record.created_at,
        updated_at=record.updated_at,
        **summary._asdict(),
    )
    if with_items:
        return SessionDetailResponse(
            items=[item_response(item) for item in record.items], **fields
        )
    return SessionResponse(**fields)


async def _in_db(func, *, with_items: bool = False, **kwargs):
    def _call():
        with db_module.SessionLocal() as db:
            result = func(db, **kwargs)
            if isinstance(result, DeclutterSession):
                return session_response(result, with_items=with_items)
            if isinstance(result, list):
                return [session_response(row) for row in result]
            return result

    return await asyncio.to_thread(_call)


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    body: SessionCreateRequest,
    user_id: str = Depends(rate_limit),
):
    try:
        return await _in_db(
            session_service.create_session,
            user_id=user_id,
            **body.model_dump(),
        )
    except SessionValidationError as exc:
        raise bad_request(exc) from exc


@router.get("", response_model=list[SessionResponse])
async def list_sessions(status: str | None = None, user_id: str = Depends(rate_limit)):
    try:
        return await _in_db(session_service.list_sessions, user_id=user_id, status=status)
    except SessionValidationError as exc:
        raise bad_request(exc) from exc


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(session_id: int, user_id: str = Depends(rate_limit)):
    record = await _in_db(
        session_service.get_session,
        with_items=True,
        user_id=user_id,
        session_id=session_id,
    )
    if record is None:
        raise not_found("Session not found")
    return record


async def _transition(func, user_id: str, session_id: int):
    try:
        record = await _in_db(func, user_id=user_id, session_id=session_id)
    except InvalidTransitionError as exc:
        raise conflict(exc) from exc
    if record is None:
        raise not_found("Session not found")
    return record


@router.post("/{session_id}/complete", response_model=SessionResponse)
async def complete_session(session_id: int, user_id: str = Depends(rate_limit)):
    return await _transition(session_service.complete_session, user_id, session_id)


@router.post("/{session_id}/archive", response_model=SessionResponse)
async def archive_session(session_id: int, user_id: str = Depends(rate_limit)):
    return await _transition(session_service.archive_session, user_id, session_id)


@router.post("/{session_id}/moving-plan", response_model=MovingPlanResponse)
async def create_moving_plan(
    session_id: int,
    schedule: bool = True,
    user_id: str = Depends(rate_limit),
):
    try:
        result = await asyncio.to_thread(
            generate_moving_plan, user_id, session_id, schedule=schedule
        )
    except SessionValidationError as exc:
        raise bad_request(exc) from exc
    except InvalidTransitionError as exc:
        raise conflict(exc) from exc
    except QuotaExceededError as exc:
        raise limit_reached(str(exc)) from exc
    except (TimeoutError, ValueError, RuntimeError) as exc:
        raise gateway_error(exc) from exc
    if result is None:
        raise not_found("Session not found")
    return MovingPlanResponse(**result._asdict())


async def _classify_in_background(user_id: str, item_id: int, locale: str) -> None:
    try:
        await asyncio.to_thread(classify_item, user_id, item_id, locale=locale)
    except Exception:
        # the item stays in "analyzing"; POST /items/{id}/classify retries it
        logger.exception("background classification crashed for item %s", item_id)


@router.post("/{session_id}/items", response_model=ItemAcceptedResponse, status_code=202)
async def create_item(
    session_id: int,
    background_tasks: BackgroundTasks,
    files: list[UploadFile] = REQUIRED_FILES,
    title: str | None = Form(None),
    notes: str | None = Form(None),
    locale: str = Form("en"),
    user_id: str = Depends(rate_limit),
):
    photos = await read_photos(files)

    def _check_session() -> DeclutterSession | None:
        with db_module.SessionLocal() as db:
            record = session_service.get_session(db, user_id=user_id, session_id=session_id)
            if record is not None:
                session_service.require_active(record)
            return record

    try:
        if await asyncio.to_thread(_check_session) is None:
            raise not_found("Session not found")
    except InvalidTransitionError as exc:
        raise conflict(exc) from exc

    stored = await upload_photos(user_id, photos)

    def _create() -> int | None:
        with db_module.SessionLocal() as db:
            item = add_item(
                db,
                user_id=user_id,
                session_id=session_id,
                photos=stored,
                title=title,
                notes=notes,
            )
            return None if item is None else item.id

    try:
        item_id = await asyncio.to_thread(_create)
    except InvalidTransitionError as exc:
        await delete_objects([key for key, _ in stored])
        raise conflict(exc) from exc
    except PhotoValidationError as exc:
        await delete_objects([key for key, _ in stored])
        raise bad_request(exc) from exc
    if item_id is None:
        await delete_objects([key for key, _ in stored])
        raise not_found("Session not found")

    background_tasks.add_task(_classify_in_background, user_id, item_id, locale)
    return ItemAcceptedResponse(item_id=item_id, status="analyzing")
