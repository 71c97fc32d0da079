from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncGenerator
import logging

from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from newsdesk.core.config import get_settings
from newsdesk.domain.models import ApiKey
from newsdesk.persistence.db import get_session
from newsdesk.services.auth.api_keys import hash_api_key


logger = logging.getLogger(__name__)

# Caller identity used when auth is disabled for local development.
DEV_USER_HEADER = "X-User-Id"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


class Principal(BaseModel):
    # The caller identity that scopes idempotency keys.
    user_id: str
    api_key_id: str | None = None


def _auth_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "AUTH_UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _parse_bearer_token(header_value: str | None) -> str:
    if not header_value:
        raise _auth_error("Missing or invalid bearer token")
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _auth_error("Missing or invalid bearer token")
    return parts[1]


async def require_caller(request: Request, db: AsyncSession = Depends(get_db)) -> Principal:
    settings = get_settings()
    if not settings.auth_enabled:
        user_id = request.headers.get(DEV_USER_HEADER)
        if not user_id:
            raise _auth_error(f"{DEV_USER_HEADER} header is required when auth is disabled")
        return Principal(user_id=user_id)

    raw_key = _parse_bearer_token(request.headers.get(settings.auth_api_key_header))
    try:
        api_key = (
            await db.execute(select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)))
        ).scalar_one_or_none()
        if api_key is None or api_key.revoked_at is not None:
            raise _auth_error("Missing or invalid bearer token")
        api_key.last_used_at = datetime.now(timezone.utc)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("api key lookup failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "SERVICE_UNAVAILABLE", "message": "Authentication backend unavailable"},
        ) from exc
    return Principal(user_id=api_key.user_id, api_key_id=api_key.id)
