from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError
from fastapi import Depends, Header, HTTPException, Request
from pydantic import BaseModel

from app.config import Settings
from app.models import ErrorCode

settings = Settings()
redis_client = redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)


logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    code: str
    message: str


def error_detail(code: ErrorCode, message: str) -> dict:
    return ErrorResponse(code=code.value, message=message).model_dump()


async def require_api_headers(
    x_api_key: str = Header(..., alias="X-API-Key"),
    x_api_ver: str | None = Header(None, alias="X-API-Ver"),
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> str:
    """Validate the internal API headers and return the caller's user id.

    The web layer authenticates the user against the hosted auth service and
    forwards the stable user id in ``X-User-ID``.
    """
    if x_api_ver is None:
        raise HTTPException(
            status_code=426,
            detail=error_detail(ErrorCode.UPGRADE_REQUIRED, "Missing API version"),
        )

    if x_api_ver != "v1":
        raise HTTPException(
            status_code=426,
            detail=error_detail(ErrorCode.UPGRADE_REQUIRED, "Invalid API version"),
        )

    if x_api_key != settings.api_key:
        raise HTTPException(
            status_code=401,
            detail=error_detail(ErrorCode.UNAUTHORIZED, "Invalid API key"),
        )

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail=error_detail(ErrorCode.UNAUTHORIZED, "Missing user ID"),
        )

    return user_id


async def rate_limit(request: Request, user_id: str = Depends(require_api_headers)) -> str:
    """Throttle requests by IP and user via Redis."""
    client_host = request.client.host if request.client else ""
    ip = client_host
    xff = request.headers.get("X-Forwarded-For")
    if xff and client_host in settings.trusted_proxies:
        forwarded = [h.strip() for h in xff.split(",") if h.strip()]
        proxies = forwarded[1:] + [client_host]
        if forwarded and all(p in settings.trusted_proxies for p in proxies):
            ip = forwarded[0]
    ip_key = f"rate:ip:{ip}"
    user_key = f"rate:user:{user_id}"

    try:
        pipe = redis_client.pipeline()
        pipe.incr(ip_key)
        pipe.expire(ip_key, 60)
        pipe.incr(user_key)
        pipe.expire(user_key, 60)
        ip_count, _, user_count, _ = await pipe.execute()
    except RedisError as exc:
        logger.exception("Redis unavailable for rate limiting: %s", exc)
        raise HTTPException(
            status_code=503,
            detail=error_detail(ErrorCode.SERVICE_UNAVAILABLE, "Rate limiter unavailable"),
        ) from exc
    if (
        ip_count > settings.rate_limit_ip_per_min
        or user_count > settings.rate_limit_user_per_min
    ):
        raise HTTPException(
            status_code=429,
            detail=error_detail(ErrorCode.TOO_MANY_REQUESTS, "Rate limit exceeded"),
        )

    return user_id


def gateway_error(exc: Exception) -> HTTPException:
    """Translate an AI Gateway failure into a 502 response."""
    if isinstance(exc, TimeoutError):
        logger.warning("GPT timeout: %s", exc)
        return HTTPException(
            status_code=502,
            detail=error_detail(ErrorCode.GPT_TIMEOUT, "GPT timeout"),
        )
    if isinstance(exc, ValueError):
        logger.warning("Invalid GPT response: %s", exc)
        return HTTPException(
            status_code=502,
            detail=error_detail(ErrorCode.SERVICE_UNAVAILABLE, "Invalid GPT response"),
        )
    logger.error("GPT error: %s", exc)
    return HTTPException(
        status_code=502,
        detail=error_detail(ErrorCode.SERVICE_UNAVAILABLE, "GPT error"),
    )


def not_found(message: str) -> HTTPException:
    return HTTPException(status_code=404, detail=error_detail(ErrorCode.NOT_FOUND, message))


def bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail=error_detail(ErrorCode.BAD_REQUEST, str(exc)))


def conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=409, detail=error_detail(ErrorCode.CONFLICT, str(exc)))


def limit_reached(message: str) -> HTTPException:
    return HTTPException(
        status_code=402, detail=error_detail(ErrorCode.LIMIT_REACHED, message)
    )
